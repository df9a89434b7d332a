from dataclasses import dataclass


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, as vouched for by the session gateway."""

    principal_id: str
    is_admin: bool = False
