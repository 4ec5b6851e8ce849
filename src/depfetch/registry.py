"""Which caller asked for which dependency, under which constraint."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from .constraint import ConstraintConflict, VersionConstraint, merge_all
from .version import UpdatePolicy

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from .models import Dependency

logger = logging.getLogger(__name__)

REGISTRY_SCHEMA_VERSION = 1


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class CallerConstraint:
    caller: str
    constraint: VersionConstraint | None = None
    update_policy: UpdatePolicy | None = None

    def to_obj(self) -> dict[str, str]:
        ret = {"plugin": self.caller}
        if self.constraint is not None:
            if self.constraint.minimum is not None:
                ret["minVersion"] = str(self.constraint.minimum)
            ret["constraint"] = str(self.constraint)
        if self.update_policy is not None:
            ret["updatePolicy"] = self.update_policy.value
        return ret

    @classmethod
    def from_obj(cls, obj: dict[str, Any]) -> CallerConstraint:
        caller = obj.get("plugin")
        if not isinstance(caller, str):
            msg = f"Constraint record without a caller: {obj!r}"
            raise ValueError(msg)  # noqa: TRY004
        constraint = None
        if obj.get("constraint"):
            constraint = VersionConstraint.parse(obj["constraint"])
        elif obj.get("minVersion"):
            constraint = VersionConstraint.at_least(obj["minVersion"])
        update_policy = None
        if obj.get("updatePolicy"):
            try:
                update_policy = UpdatePolicy.parse(obj["updatePolicy"])
            except ValueError:
                logger.warning("Ignoring unknown update policy %r for %s", obj["updatePolicy"], caller)
        return cls(caller, constraint, update_policy)


@dataclass
class Registration:
    """Every caller's request for one dependency name, in registration order."""

    name: str
    requested_by: list[str] = field(default_factory=list)
    constraints: list[CallerConstraint] = field(default_factory=list)

    def add(self, caller: str, constraint: VersionConstraint | None, update_policy: UpdatePolicy | None) -> None:
        """Record `caller`'s request, replacing any earlier request from the same caller."""
        if caller not in self.requested_by:
            self.requested_by.append(caller)
        self.constraints = [c for c in self.constraints if c.caller != caller]
        self.constraints.append(CallerConstraint(caller, constraint, update_policy))

    def remove(self, caller: str) -> None:
        self.requested_by = [c for c in self.requested_by if c != caller]
        self.constraints = [c for c in self.constraints if c.caller != caller]

    def __bool__(self) -> bool:
        return bool(self.constraints)

    def merge(self, *, log_conflicts: bool = False) -> tuple[VersionConstraint | None, list[ConstraintConflict]]:
        """The effective constraint, or None if nobody has registered a request."""
        if not self.constraints:
            return None, []
        return merge_all((c.constraint for c in self.constraints), log_conflicts=log_conflicts)

    def to_obj(self) -> dict[str, Any]:
        merged, _ = self.merge()
        merged_obj = None
        if merged is not None:
            merged_obj = {"constraint": str(merged)}
            if merged.minimum is not None:
                merged_obj["minVersion"] = str(merged.minimum)
        return {
            "requestedBy": list(self.requested_by),
            "constraints": [c.to_obj() for c in self.constraints],
            "mergedConstraint": merged_obj,
        }

    @classmethod
    def from_obj(cls, name: str, obj: dict[str, Any]) -> Registration:
        if not isinstance(obj, dict):
            msg = f"Registration for {name} is not an object"
            raise ValueError(msg)  # noqa: TRY004
        registration = cls(name)
        registration.requested_by = [c for c in obj.get("requestedBy") or [] if isinstance(c, str)]
        for record in obj.get("constraints") or []:
            try:
                registration.constraints.append(CallerConstraint.from_obj(record))
            except (AttributeError, ValueError) as e:
                logger.warning("Dropping unreadable constraint for %s: %s", name, e)
        for c in registration.constraints:
            if c.caller not in registration.requested_by:
                registration.requested_by.append(c.caller)
        return registration


class Registry:
    """Registrations keyed by dependency display name.

    The effective constraint for a name folds every registered caller's constraint, in order, through
    `merge_all`; incompatible steps fall back to the higher minimum and are kept as conflicts.
    """

    def __init__(self, registrations: Iterable[Registration] = ()) -> None:
        self._registrations: dict[str, Registration] = {r.name: r for r in registrations}

    def register(self, caller: str, dependencies: Iterable[Dependency]) -> None:
        """Record `caller`'s dependency list.

        A caller is idempotent, not additive: its previous requests are replaced, including those
        for names it no longer lists.
        """
        dependencies = list(dependencies)
        names = {dependency.display_name for dependency in dependencies}
        for name in list(self._registrations):
            if name not in names:
                self._remove(name, caller)
        for dependency in dependencies:
            registration = self._registrations.setdefault(dependency.display_name, Registration(dependency.display_name))
            registration.add(caller, dependency.constraint, dependency.update_policy)

    def unregister(self, caller: str) -> None:
        for name in list(self._registrations):
            self._remove(name, caller)

    def _remove(self, name: str, caller: str) -> None:
        registration = self._registrations[name]
        registration.remove(caller)
        if not registration:
            del self._registrations[name]

    def merged_constraint(self, name: str) -> VersionConstraint | None:
        """The effective constraint for `name`, or None if it is not registered."""
        registration = self._registrations.get(name)
        return registration.merge(log_conflicts=True)[0] if registration is not None else None

    def conflicts(self, name: str) -> list[ConstraintConflict]:
        registration = self._registrations.get(name)
        return registration.merge()[1] if registration is not None else []

    def requesting_callers(self, name: str) -> list[str]:
        registration = self._registrations.get(name)
        return list(registration.requested_by) if registration is not None else []

    def callers(self) -> list[str]:
        seen: dict[str, None] = {}
        for registration in self._registrations.values():
            seen.update(dict.fromkeys(registration.requested_by))
        return list(seen)

    def __getitem__(self, name: str) -> Registration:
        return self._registrations[name]

    def __contains__(self, name: object) -> bool:
        return name in self._registrations

    def __iter__(self) -> Iterator[str]:
        return iter(self._registrations)

    def __len__(self) -> int:
        return len(self._registrations)

    def to_obj(self) -> dict[str, Any]:
        return {
            "version": REGISTRY_SCHEMA_VERSION,
            "generated": utc_timestamp(),
            "registrations": {name: r.to_obj() for name, r in self._registrations.items()},
        }

    def to_json(self) -> str:
        return json.dumps(self.to_obj(), indent=2) + "\n"

    @classmethod
    def from_obj(cls, obj: dict[str, Any]) -> Registry:
        """Rebuild a registry from its JSON object.

        Raises:
            ValueError: if `obj` does not have the registry's shape

        """
        if not isinstance(obj, dict):
            msg = "Registry root is not an object"
            raise ValueError(msg)  # noqa: TRY004
        registrations = obj.get("registrations") or {}
        if not isinstance(registrations, dict):
            msg = "Registry registrations are not an object"
            raise ValueError(msg)  # noqa: TRY004
        return cls(Registration.from_obj(name, data) for name, data in registrations.items())

    @classmethod
    def from_json(cls, text: str) -> Registry:
        if not text.strip():
            return cls()
        return cls.from_obj(json.loads(text))
