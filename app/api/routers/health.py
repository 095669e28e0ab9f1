from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/up")
@router.get("/health")
def health():
    return {"status": "ok"}
