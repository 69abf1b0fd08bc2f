"""
Stack Program

A stack program declares resources into a GraphBuilder from configuration.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Type

from pydantic import BaseModel

from ..config.loader import Configuration
from ..dag.builder import GraphBuilder


@dataclass(frozen=True)
class StackProgram:
    """
    Named declaration function plus the settings schema its config must satisfy.

    Attributes:
        name: Program name referenced by stack config ("program: guestbook")
        define: Declares resources and exports; must not read Output values
        settings_model: Pydantic model validating the stack's config values
    """
    name: str
    define: Callable[[GraphBuilder, Configuration], None]
    settings_model: Optional[Type[BaseModel]] = None
