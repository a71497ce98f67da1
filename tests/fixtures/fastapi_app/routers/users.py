from typing import Optional

from fastapi import APIRouter, Depends, Header

from models import User, UserCreate

router = APIRouter(prefix="/users", tags=["users"])


def get_db():
    return None


@router.get("/", response_model=list[User])
def list_users(skip: int = 0, limit: int = 10, q: Optional[str] = None, db=Depends(get_db)):
    return []


@router.get("/{user_id}", response_model=User)
def get_user(user_id: int, x_request_id: Optional[str] = Header(None)):
    return None


@router.post("/", response_model=User, status_code=201, summary="Register a user")
def create_user(user: UserCreate):
    return user


@router.delete("/{user_id}", status_code=204)
def delete_user(user_id: int):
    return None
