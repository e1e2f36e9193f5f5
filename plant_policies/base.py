"""
Shared pieces of the plant policies: field checks, JSON coercion helpers
and the OperationReport returned by grow, derive, synthesize and export.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, List, Tuple
import json
import logging

logger = logging.getLogger(__name__)

# (low, high) bounds; None leaves that side open
Bounds = Tuple[Optional[float], Optional[float]]


def validate_policy(
    policy: Any,
    required_fields: Optional[List[str]] = None,
    positive_fields: Optional[List[str]] = None,
    bounds: Optional[Dict[str, Bounds]] = None,
) -> List[str]:
    """
    Check the fields of a policy dataclass.

    Parameters
    ----------
    policy : Any
        Policy instance
    required_fields : List[str], optional
        Fields that must be present and not None
    positive_fields : List[str], optional
        Fields that must be strictly greater than zero
    bounds : dict, optional
        Field name -> inclusive ``(low, high)`` range

    Returns
    -------
    List[str]
        One message per violated check (empty if valid)
    """
    errors = []

    for name in required_fields or []:
        if getattr(policy, name, None) is None:
            errors.append(f"{name} is required")

    for name in positive_fields or []:
        value = getattr(policy, name)
        if value <= 0:
            errors.append(f"{name} must be > 0, got {value}")

    for name, (low, high) in (bounds or {}).items():
        value = getattr(policy, name)
        if low is not None and high is not None:
            if not low <= value <= high:
                errors.append(f"{name} must be in [{low}, {high}], got {value}")
        elif low is not None and value < low:
            errors.append(f"{name} must be >= {low}, got {value}")
        elif high is not None and value > high:
            errors.append(f"{name} must be <= {high}, got {value}")

    return errors


def coerce_vec3(
    value: Any,
    default: Tuple[float, float, float] = (1.0, 1.0, 1.0),
) -> Tuple[float, float, float]:
    """
    Read a scale or direction from JSON.

    Accepts a single number (uniform), a list of three numbers or an
    ``{"x", "y", "z"}`` object. Anything else falls back to ``default``.
    """
    if value is None:
        return default
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (float(value),) * 3
    if isinstance(value, dict):
        value = [value.get(axis) for axis in ("x", "y", "z")]
    if isinstance(value, (tuple, list)) and len(value) == 3:
        try:
            return tuple(float(v) for v in value)
        except (TypeError, ValueError):
            pass
    logger.warning(f"Could not read a 3-vector from {value!r}; using {default}")
    return default


def alias_fields(d: Dict[str, Any], aliases: Dict[str, str]) -> Dict[str, Any]:
    """
    Rename short or legacy keys (``aliases`` maps alias -> field name).

    A key already given under its field name wins over its alias.
    """
    result = dict(d)
    for alias, name in aliases.items():
        if alias in result:
            value = result.pop(alias)
            result.setdefault(name, value)
    return result


@dataclass
class OperationReport:
    """
    Result record of one plant operation.

    ``requested_policy`` is the policy as passed in; ``effective_policy``
    is what actually ran (a seed override, the derivation tree after
    parsing). Growth stopping early or collars falling back to plain
    rings are warnings; an error marks the report as failed.
    """
    operation: str = "unknown"
    success: bool = True
    requested_policy: Dict[str, Any] = field(default_factory=dict)
    effective_policy: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    def add_warning(self, message: str) -> None:
        logger.warning(f"{self.operation}: {message}")
        self.warnings.append(message)

    def add_error(self, message: str) -> None:
        """Record an error and mark the operation as failed."""
        logger.error(f"{self.operation}: {message}")
        self.errors.append(message)
        self.success = False

    def merge(self, other: "OperationReport") -> None:
        """Fold another report's warnings, errors and outcome into this one."""
        self.warnings.extend(other.warnings)
        self.errors.extend(other.errors)
        if not other.success:
            self.success = False
