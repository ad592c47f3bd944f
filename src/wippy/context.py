"""Explicit per-request context handed to every orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from .codec import BranchNameCodec
from .git import RepositoryGateway
from .prompts import Prompter


@dataclass
class WipContext:
    """Collaborators one operation runs against, built per request by the engine."""

    repository: RepositoryGateway
    username: str
    prompter: Prompter
    clock: Callable[[], datetime] = datetime.now
    codec: BranchNameCodec = field(default_factory=BranchNameCodec)
