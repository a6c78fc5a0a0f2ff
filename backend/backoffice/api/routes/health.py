from fastapi import APIRouter

router = APIRouter()


@router.get("/", response_model=dict)
def health():
    return {"status": "ok"}
