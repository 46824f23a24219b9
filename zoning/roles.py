from __future__ import annotations

from dataclasses import dataclass

SUPPORTED_ROLES = (
    "api",
    "worker-sweeper",
)

SWEEPER_ROLES = frozenset({"worker-sweeper"})


@dataclass(frozen=True)
class RuntimeRole:
    name: str

    @property
    def runs_sweeper(self) -> bool:
        return self.name in SWEEPER_ROLES


def validate_role(role: str) -> RuntimeRole:
    if role in SUPPORTED_ROLES:
        return RuntimeRole(name=role)

    supported = ", ".join(SUPPORTED_ROLES)
    raise ValueError(
        f"Unsupported role '{role}'. Supported roles: {supported}. "
        "Note: external cron triggers use --sweep-once, not a separate role."
    )
