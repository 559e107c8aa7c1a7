from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/healthz")
def healthz():
    return {"status": "ok"}


@router.get("/status")
def operator_status(request: Request):
    result = request.app.state.status.as_dict()
    result["suspensions"] = request.app.state.registry.snapshot()
    return result
