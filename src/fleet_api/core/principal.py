"""Lightweight identity representation handed over by the auth layer."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(slots=True)
class AuthenticatedPrincipal:
    """Identity information available to downstream handlers."""

    user_id: UUID


__all__ = ["AuthenticatedPrincipal"]
