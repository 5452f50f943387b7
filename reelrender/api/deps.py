from typing import Annotated

from fastapi import Depends

from reelrender.config import get_settings
from reelrender.services.orchestrator import RenderOrchestrator

# One orchestrator per process so every request shares the admission gate
_orchestrator: RenderOrchestrator | None = None


def get_orchestrator() -> RenderOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = RenderOrchestrator(get_settings())
    return _orchestrator


Orchestrator = Annotated[RenderOrchestrator, Depends(get_orchestrator)]
