import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

router = APIRouter()
logger = logging.getLogger("clusterward.api")


class SuspensionRequest(BaseModel):
    subsystem: str


@router.get("/suspensions")
def list_suspensions(request: Request):
    return request.app.state.registry.snapshot()


@router.post("/suspend")
def suspend_subsystem(req: SuspensionRequest, request: Request):
    logger.info("[SUSPEND] Subsystem=%s", req.subsystem)
    try:
        request.app.state.registry.suspend(req.subsystem)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "success", "subsystem": req.subsystem, "suspended": True}


@router.post("/resume")
def resume_subsystem(req: SuspensionRequest, request: Request):
    logger.info("[RESUME] Subsystem=%s", req.subsystem)
    try:
        request.app.state.registry.resume(req.subsystem)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "success", "subsystem": req.subsystem, "suspended": False}
