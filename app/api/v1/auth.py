from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.db.mongo import get_mongo_db
from app.core.security import CallerContext, get_current_user, verify_password, create_jwt
from app.schemas.auth_schema import LoginIn, UserOut, AuthResponse
from app.api.v1.users import user_out

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=AuthResponse)
async def login(payload: LoginIn, db: AsyncIOMotorDatabase = Depends(get_mongo_db)):
    user = await db["users"].find_one({"email": payload.email, "is_active": True})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    token = create_jwt({"sub": str(user["_id"]), "role": user.get("role", "user")})
    # Update last_login
    await db["users"].update_one({"_id": user["_id"]}, {"$set": {"last_login": datetime.utcnow()}})
    return {"user": user_out(user), "token": token}


@router.get("/me", response_model=UserOut)
async def get_me(
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    user = await db["users"].find_one({"_id": ObjectId(current_user.id)})
    return user_out(user)
