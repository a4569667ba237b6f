"""
Transition policy (``invoicing_kernel.domain.transitions``).

Responsibility
--------------
Decides whether a status change is legal for an acting role.  The policy
is a pure, immutable rule table keyed by ``(kind, from_status, to_status)``
and carries no I/O.  It is constructed explicitly and injected into the
status mutation service.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  May import only
from ``domain/statuses`` and ``exceptions``.

Invariants enforced
-------------------
* Closed world: any ``(kind, from, to)`` without a rule is illegal for
  every role, identity transitions included.
* Construction validates the table: no duplicate keys, no identity rules,
  every status belongs to the rule's kind, every rule names at least one
  role, and every status is reachable from DRAFT unless it is declared
  system-managed.
* State-machine shape (``is_valid_transition``) and authorization
  (``is_authorized``) are separate predicates; authorization is delegated
  to a pluggable ``Authorizer``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Protocol

from invoicing_kernel.domain.statuses import (
    EntityKind,
    Role,
    Status,
    initial_status,
    list_statuses,
    parse_status,
)
from invoicing_kernel.exceptions import (
    IllegalTransitionError,
    InvalidStatusError,
    PolicyDefinitionError,
)

RuleKey = tuple[EntityKind, Status, Status]


def _text(value: object) -> str:
    return value.value if isinstance(value, Enum) else str(value)


@dataclass(frozen=True)
class TransitionRule:
    """One permitted status change and the roles allowed to perform it."""

    kind: EntityKind
    from_status: Status
    to_status: Status
    allowed_roles: frozenset[Role]

    @property
    def key(self) -> RuleKey:
        return (self.kind, self.from_status, self.to_status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.from_status.value,
            "to": self.to_status.value,
            "roles": sorted(r.value for r in self.allowed_roles),
        }


class Authorizer(Protocol):
    """Decides whether ``role`` may perform an existing ``rule``."""

    def is_authorized(self, rule: TransitionRule, role: Role) -> bool: ...


class RoleSetAuthorizer:
    """Default authorizer: the role must be in the rule's allowed set."""

    def is_authorized(self, rule: TransitionRule, role: Role) -> bool:
        return role in rule.allowed_roles


def rule(
    kind: EntityKind,
    from_status: str,
    to_status: str,
    roles: Iterable[Role | str],
) -> TransitionRule:
    """Build a TransitionRule from plain values, validating each one."""
    kind = EntityKind(kind)
    try:
        from_member = parse_status(kind, from_status)
        to_member = parse_status(kind, to_status)
    except InvalidStatusError as exc:
        raise PolicyDefinitionError(
            kind.value, f"unknown status {exc.status!r}"
        ) from None

    allowed: set[Role] = set()
    for r in roles:
        try:
            allowed.add(Role(r))
        except ValueError:
            raise PolicyDefinitionError(kind.value, f"unknown role {r!r}") from None

    return TransitionRule(
        kind=kind,
        from_status=from_member,
        to_status=to_member,
        allowed_roles=frozenset(allowed),
    )


class TransitionPolicy:
    """
    Immutable, table-driven transition policy.

    Usage:
        policy = default_policy()
        policy.can_transition(
            EntityKind.PURCHASE_ORDER,
            PurchaseOrderStatus.DRAFT,
            PurchaseOrderStatus.PENDING,
            Role.CREATOR,
        )  # True
    """

    def __init__(
        self,
        rules: Iterable[TransitionRule],
        *,
        system_statuses: Mapping[EntityKind, Iterable[Status | str]] | None = None,
        authorizer: Authorizer | None = None,
    ):
        table: dict[RuleKey, TransitionRule] = {}
        for r in rules:
            self._validate_rule(r)
            if r.key in table:
                raise PolicyDefinitionError(
                    r.kind.value,
                    f"duplicate rule {r.from_status.value} -> {r.to_status.value}",
                )
            table[r.key] = r

        system: dict[EntityKind, frozenset[Status]] = {}
        for kind, statuses in (system_statuses or {}).items():
            kind = EntityKind(kind)
            try:
                system[kind] = frozenset(parse_status(kind, s) for s in statuses)
            except InvalidStatusError as exc:
                raise PolicyDefinitionError(
                    kind.value, f"unknown system status {exc.status!r}"
                ) from None

        self._rules: Mapping[RuleKey, TransitionRule] = MappingProxyType(table)
        self._system_statuses: Mapping[EntityKind, frozenset[Status]] = MappingProxyType(system)
        self._authorizer: Authorizer = authorizer or RoleSetAuthorizer()

        for kind in EntityKind:
            if any(k[0] == kind for k in table) or kind in system:
                self._check_reachability(kind)

    @staticmethod
    def _validate_rule(r: TransitionRule) -> None:
        if not isinstance(r.kind, EntityKind):
            raise PolicyDefinitionError(str(r.kind), "unknown entity kind")
        kind = r.kind
        for status in (r.from_status, r.to_status):
            try:
                member = parse_status(kind, status)
            except InvalidStatusError:
                raise PolicyDefinitionError(
                    kind.value, f"status {status!r} does not belong to {kind.value}"
                ) from None
            if member is not status:
                raise PolicyDefinitionError(
                    kind.value, f"status {status!r} is not a {kind.value} status member"
                )
        if r.from_status is r.to_status:
            raise PolicyDefinitionError(
                kind.value, f"identity rule {r.from_status.value} -> {r.to_status.value}"
            )
        if not r.allowed_roles:
            raise PolicyDefinitionError(
                kind.value,
                f"rule {r.from_status.value} -> {r.to_status.value} allows no roles",
            )
        for role in r.allowed_roles:
            if not isinstance(role, Role):
                raise PolicyDefinitionError(kind.value, f"unknown role {role!r}")

    def _check_reachability(self, kind: EntityKind) -> None:
        start = initial_status(kind)
        reached = {start}
        frontier = [start]
        while frontier:
            current = frontier.pop()
            for (k, src, dst) in self._rules:
                if k == kind and src is current and dst not in reached:
                    reached.add(dst)
                    frontier.append(dst)

        exempt = self._system_statuses.get(kind, frozenset())
        unreachable = [
            s.value for s in list_statuses(kind)
            if s not in reached and s not in exempt
        ]
        if unreachable:
            raise PolicyDefinitionError(
                kind.value,
                f"statuses unreachable from {start.value}: {', '.join(unreachable)}",
            )

    # -----------------------------------------------------------------
    # Decisions
    # -----------------------------------------------------------------

    def _lookup(self, kind: EntityKind, from_status: Status, to_status: Status) -> TransitionRule | None:
        return self._rules.get((kind, from_status, to_status))

    def can_transition(
        self,
        kind: EntityKind,
        from_status: Status,
        to_status: Status,
        role: Role,
    ) -> bool:
        """True iff a rule exists and ``role`` is authorized for it."""
        found = self._lookup(kind, from_status, to_status)
        if found is None:
            return False
        return self._authorizer.is_authorized(found, role)

    def is_valid_transition(
        self,
        kind: EntityKind,
        from_status: Status,
        to_status: Status,
    ) -> bool:
        return self._lookup(kind, from_status, to_status) is not None

    def is_authorized(
        self,
        kind: EntityKind,
        from_status: Status,
        to_status: Status,
        role: Role,
    ) -> bool:
        found = self._lookup(kind, from_status, to_status)
        return found is not None and self._authorizer.is_authorized(found, role)

    def require(
        self,
        kind: EntityKind,
        from_status: Status,
        to_status: Status,
        role: Role,
    ) -> TransitionRule:
        """
        Return the matching rule or raise.

        Raises:
            IllegalTransitionError: no rule exists, or ``role`` is not
                authorized.  ``required_roles`` is empty in the first case.
        """
        found = self._lookup(kind, from_status, to_status)
        if found is None or not self._authorizer.is_authorized(found, role):
            raise IllegalTransitionError(
                entity_type=EntityKind(kind).value,
                from_status=_text(from_status),
                to_status=_text(to_status),
                role=_text(role),
                required_roles=(
                    r.value for r in (found.allowed_roles if found else ())
                ),
            )
        return found

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------

    def required_roles(
        self,
        kind: EntityKind,
        from_status: Status,
        to_status: Status,
    ) -> frozenset[Role]:
        found = self._lookup(kind, from_status, to_status)
        return found.allowed_roles if found else frozenset()

    def next_statuses(
        self,
        kind: EntityKind,
        from_status: Status,
        role: Role | None = None,
    ) -> tuple[Status, ...]:
        """
        Statuses reachable in one step from ``from_status``.

        With ``role`` given, only the moves that role may perform.  Ordered
        by the kind's status declaration order.
        """
        return tuple(
            s for s in list_statuses(kind)
            if (
                self.is_valid_transition(kind, from_status, s)
                if role is None
                else self.can_transition(kind, from_status, s, role)
            )
        )

    def rules_for(self, kind: EntityKind) -> tuple[TransitionRule, ...]:
        return tuple(r for r in self._rules.values() if r.kind == kind)

    def system_statuses(self, kind: EntityKind) -> frozenset[Status]:
        return self._system_statuses.get(kind, frozenset())

    def __iter__(self) -> Iterator[TransitionRule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, key: object) -> bool:
        return key in self._rules

    # -----------------------------------------------------------------
    # Serialization
    # -----------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize for audit/debug output.

        Shape matches the ``workflows`` section of a configuration set::

            {"PURCHASE_ORDER": {"system_statuses": [...],
                                "transitions": [{"from", "to", "roles"}]}}
        """
        result: dict[str, Any] = {}
        for kind in EntityKind:
            kind_rules = self.rules_for(kind)
            system = self.system_statuses(kind)
            if not kind_rules and not system:
                continue
            result[kind.value] = {
                "system_statuses": [s.value for s in list_statuses(kind) if s in system],
                "transitions": [r.to_dict() for r in kind_rules],
            }
        return result

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        authorizer: Authorizer | None = None,
    ) -> TransitionPolicy:
        """
        Rebuild a policy from ``to_dict()`` output (or a ``workflows`` section).

        Raises:
            PolicyDefinitionError: unknown kind, status or role, or any
                table-level violation.
        """
        rules: list[TransitionRule] = []
        system: dict[EntityKind, list[str]] = {}
        for kind_name, section in data.items():
            try:
                kind = EntityKind(kind_name)
            except ValueError:
                raise PolicyDefinitionError(
                    str(kind_name), "unknown entity kind"
                ) from None
            section = section or {}
            if not isinstance(section, Mapping):
                raise PolicyDefinitionError(
                    kind.value, f"workflow section must be a mapping, got {section!r}"
                )
            statuses = section.get("system_statuses") or []
            transitions = section.get("transitions") or []
            if isinstance(statuses, str) or not isinstance(statuses, (list, tuple)):
                raise PolicyDefinitionError(kind.value, "system_statuses must be a list")
            if not isinstance(transitions, (list, tuple)):
                raise PolicyDefinitionError(kind.value, "transitions must be a list")
            system[kind] = list(statuses)
            for entry in transitions:
                try:
                    rules.append(
                        rule(kind, entry["from"], entry["to"], entry["roles"])
                    )
                except (KeyError, TypeError):
                    raise PolicyDefinitionError(
                        kind.value,
                        f"transition entry needs from, to and roles: {entry!r}",
                    ) from None
        return cls(rules, system_statuses=system, authorizer=authorizer)

    def __repr__(self) -> str:
        return f"TransitionPolicy(rules={len(self._rules)})"


# =========================================================================
# Default rule tables
# =========================================================================

_C, _M, _A = Role.CREATOR, Role.MANAGER, Role.ADMIN

PURCHASE_ORDER_RULES: tuple[TransitionRule, ...] = (
    rule(EntityKind.PURCHASE_ORDER, "DRAFT", "PENDING", (_C, _M)),
    rule(EntityKind.PURCHASE_ORDER, "PENDING", "SENT", (_M, _A)),
    rule(EntityKind.PURCHASE_ORDER, "SENT", "COMPLETED", (_M, _A)),
    rule(EntityKind.PURCHASE_ORDER, "PENDING", "REJECTED", (_M, _A)),
    rule(EntityKind.PURCHASE_ORDER, "REJECTED", "DRAFT", (_C, _M)),
)

INVOICE_RULES: tuple[TransitionRule, ...] = (
    rule(EntityKind.INVOICE, "DRAFT", "SENT", (_C, _M, _A)),
    rule(EntityKind.INVOICE, "DRAFT", "CANCELLED", (_M, _A)),
    rule(EntityKind.INVOICE, "SENT", "PAID", (_M, _A)),
    rule(EntityKind.INVOICE, "SENT", "CANCELLED", (_M, _A)),
    rule(EntityKind.INVOICE, "OVERDUE", "PAID", (_M, _A)),
    rule(EntityKind.INVOICE, "OVERDUE", "CANCELLED", (_M, _A)),
    rule(EntityKind.INVOICE, "PAID", "CANCELLED", (_A,)),
)

# OVERDUE is set by time-based jobs outside the kernel; no user rule enters it.
SYSTEM_MANAGED_STATUSES: Mapping[EntityKind, tuple[str, ...]] = MappingProxyType({
    EntityKind.PURCHASE_ORDER: ("OVERDUE",),
    EntityKind.INVOICE: ("OVERDUE",),
})


def default_policy(authorizer: Authorizer | None = None) -> TransitionPolicy:
    """The built-in purchase-order and invoice policy."""
    return TransitionPolicy(
        PURCHASE_ORDER_RULES + INVOICE_RULES,
        system_statuses=SYSTEM_MANAGED_STATUSES,
        authorizer=authorizer,
    )
