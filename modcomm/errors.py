"""
Communication error types with rich diagnostics.

Every failure raised by the container, the service registry or the module
manager derives from CommunicationError, so callers can catch the whole
family with one clause and still branch on ``code``.
"""

from typing import Any, Dict, List, Optional, Sequence


class CommunicationError(Exception):
    """Base error for all module communication errors."""

    code = "COMMUNICATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        suggestion: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def format_error(self) -> str:
        """Format error with rich diagnostics."""
        lines = [f"❌ {self.__class__.__name__} [{self.code}]: {self.message}"]

        if self.details:
            lines.append("\n   Details:")
            for key, value in self.details.items():
                lines.append(f"   - {key}: {value}")

        if self.suggestion:
            lines.append(f"\n   💡 Suggestion: {self.suggestion}")

        return "\n".join(lines)

    def __str__(self) -> str:
        return self.format_error()


class ResolutionError(CommunicationError):
    """A service or one of its dependencies could not be constructed."""

    code = "RESOLUTION_FAILED"

    def __init__(
        self,
        name: str,
        reason: str,
        *,
        trace: Optional[Sequence[str]] = None,
        suggestion: Optional[str] = None,
    ):
        self.name = name
        self.reason = reason
        self.trace = list(trace or [])

        details: Dict[str, Any] = {"service": name}
        if self.trace:
            details["resolution_trace"] = " -> ".join(self.trace)

        super().__init__(
            f"Cannot resolve '{name}': {reason}",
            suggestion=suggestion,
            details=details,
        )


class ServiceNotFoundError(ResolutionError):
    """No binding is registered under the requested name."""

    code = "SERVICE_NOT_FOUND"

    def __init__(
        self,
        name: str,
        *,
        candidates: Optional[List[str]] = None,
        trace: Optional[Sequence[str]] = None,
    ):
        self.candidates = candidates or []

        suggestion = f"Register a service named '{name}' before resolving it"
        if self.candidates:
            suggestion += f" (did you mean: {', '.join(self.candidates)}?)"

        super().__init__(
            name,
            "service is not registered",
            trace=trace,
            suggestion=suggestion,
        )


class CircularDependencyError(CommunicationError):
    """
    A dependency chain includes itself.

    Example:
        billing depends on invoices
        invoices depends on billing  <- CYCLE
    """

    code = "CIRCULAR_DEPENDENCY"

    def __init__(self, name: str, cycle: Optional[Sequence[str]] = None):
        self.name = name
        self.cycle = list(cycle or [name])

        cycle_repr = " -> ".join(self.cycle)
        super().__init__(
            f"Circular dependency detected: {name} ({cycle_repr})",
            suggestion=(
                "Break the cycle by removing one dependency or by "
                "communicating through events or hooks instead"
            ),
            details={"cycle": self.cycle, "cycle_length": len(self.cycle)},
        )


class DepthExceededError(CommunicationError):
    """The resolution chain grew past the configured depth bound."""

    code = "DEPTH_EXCEEDED"

    def __init__(self, name: str, max_depth: int, trace: Optional[Sequence[str]] = None):
        self.name = name
        self.max_depth = max_depth
        self.trace = list(trace or [])

        super().__init__(
            f"Maximum resolution depth ({max_depth}) exceeded while resolving '{name}'",
            suggestion="Flatten the dependency chain or raise max_resolution_depth",
            details={"max_depth": max_depth, "resolution_trace": " -> ".join(self.trace)},
        )


class ModuleLoadError(CommunicationError):
    """A module could not be instantiated, registered or booted."""

    code = "MODULE_LOAD_FAILED"

    def __init__(
        self,
        module_name: str,
        reason: str,
        *,
        missing: Optional[List[str]] = None,
    ):
        self.module_name = module_name
        self.reason = reason
        self.missing = missing or []

        details: Dict[str, Any] = {"module": module_name}
        suggestion = None
        if self.missing:
            details["missing_capabilities"] = self.missing
            suggestion = (
                f"Implement {', '.join(self.missing)} on the module's "
                f"communication class"
            )

        super().__init__(
            f"Failed to load module '{module_name}': {reason}",
            suggestion=suggestion,
            details=details,
        )


class ModuleStateError(CommunicationError):
    """An illegal module lifecycle transition was attempted."""

    code = "INVALID_MODULE_TRANSITION"

    def __init__(self, module_name: str, current: str, target: str):
        self.module_name = module_name
        self.current = current
        self.target = target

        super().__init__(
            f"Module '{module_name}' cannot move from {current} to {target}",
            details={"module": module_name, "current": current, "target": target},
        )


__all__ = [
    "CommunicationError",
    "ResolutionError",
    "ServiceNotFoundError",
    "CircularDependencyError",
    "DepthExceededError",
    "ModuleLoadError",
    "ModuleStateError",
]
