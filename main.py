import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, File, Query, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import config
import oauth
import uploads
from analytics import compute_analytics
from auth import create_access_token, get_current_user, get_password_hash, verify_password
from database import get_db, init_db
from errors import AuthenticationError, ConflictError, NotFoundError, ValidationError, register_error_handlers
from logging_setup import setup_logging
from models import User, Task
from schemas import (
    AccountDelete,
    ProfileUpdate,
    TaskCreate,
    TaskOut,
    TaskUpdate,
    TASK_PRIORITIES,
    TASK_STATUSES,
    Token,
    UserCreate,
    UserLogin,
    UserOut,
)
from task_query import SORT_KEYS, SORT_ORDERS, TaskFilter, TaskSort, query_tasks

logger = logging.getLogger(__name__)

init_db()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(config.LOG_LEVEL, config.LOG_FILE)
    logger.info("Task manager API starting, database %s", config.DATABASE_URL.split("@")[-1])
    yield


# Initialize app
app = FastAPI(title="Task Manager API", lifespan=lifespan)

os.makedirs(config.AVATAR_DIR, exist_ok=True)
app.mount(uploads.AVATAR_URL_PREFIX.rstrip("/"), StaticFiles(directory=config.AVATAR_DIR), name="avatars")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_error_handlers(app)


def _owned_task(db: Session, task_id: int, user: User) -> Task:
    task = db.query(Task).filter(Task.id == task_id, Task.owner_id == user.id).first()
    if not task:
        raise NotFoundError("Task not found")
    return task


# -----------------------------
# Auth
# -----------------------------
@app.post("/api/auth/signup", status_code=status.HTTP_201_CREATED, response_model=Token)
def signup(user: UserCreate, db: Session = Depends(get_db)):
    existing = db.query(User).filter(User.email == user.email).first()
    if existing:
        raise ConflictError("User already exists")

    new_user = User(
        name=user.name,
        email=user.email,
        password=get_password_hash(user.password),
        provider="local",
    )
    db.add(new_user)
    try:
        db.commit()
    except IntegrityError:
        # lost a race with a concurrent signup for the same email
        db.rollback()
        raise ConflictError("User already exists")
    db.refresh(new_user)
    logger.info("Registered user %s", new_user.id)

    return {"token": create_access_token(new_user)}


@app.post("/api/auth/login", response_model=Token)
def login(credentials: UserLogin, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == credentials.email.strip().lower()).first()

    if not user or not verify_password(credentials.password, user.password):
        logger.info("Failed login for %s", credentials.email)
        raise AuthenticationError("Invalid credentials")

    return {"token": create_access_token(user)}


def _oauth_callback(provider: str, code: Optional[str], db: Session):
    if not code:
        return RedirectResponse(oauth.authorize_url(provider))

    login_url = f"{config.FRONTEND_URL}/auth/login"
    try:
        profile = oauth.fetch_profile(provider, code)
        user = oauth.find_or_create_user(db, profile)
        token = create_access_token(user)
    except oauth.OAuthError as exc:
        logger.warning("%s sign-in failed: %s", provider, exc)
        return RedirectResponse(f"{login_url}?error={exc.reason}")
    except Exception:
        logger.exception("%s sign-in failed", provider)
        db.rollback()
        return RedirectResponse(f"{login_url}?error=oauth_failed")

    return RedirectResponse(f"{config.FRONTEND_URL}/auth/callback?token={token}&provider={provider}")


@app.get("/api/auth/google")
def google_auth(code: Optional[str] = None, db: Session = Depends(get_db)):
    return _oauth_callback("google", code, db)


@app.get("/api/auth/github")
def github_auth(code: Optional[str] = None, db: Session = Depends(get_db)):
    return _oauth_callback("github", code, db)


# -----------------------------
# Tasks
# -----------------------------
@app.get("/api/tasks")
def list_tasks(
    status_filter: Optional[str] = Query(None, alias="status"),
    priority: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    page: int = 1,
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    errors = []
    if status_filter and status_filter != "all" and status_filter not in TASK_STATUSES:
        errors.append("Invalid status value")
    if priority and priority != "all" and priority not in TASK_PRIORITIES:
        errors.append("Invalid priority value")
    if sort_by not in SORT_KEYS:
        errors.append("Invalid sortBy value")
    if sort_order not in SORT_ORDERS:
        errors.append("Invalid sortOrder value")
    if errors:
        raise ValidationError(details=errors)

    query = db.query(Task).filter(Task.owner_id == user.id)
    if status_filter and status_filter != "all":
        query = query.filter(Task.status == status_filter)
    if priority and priority != "all":
        query = query.filter(Task.priority == priority)
    tasks = [TaskOut.model_validate(t) for t in query.order_by(Task.created_at, Task.id)]

    result = query_tasks(tasks, TaskFilter(search=search or ""), TaskSort(sort_by, sort_order), page, limit)
    return {
        "success": True,
        "tasks": [t.to_json() for t in result.tasks],
        "pagination": result.pagination(),
    }


@app.post("/api/tasks", status_code=status.HTTP_201_CREATED)
def create_task(task: TaskCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    new_task = Task(
        title=task.title,
        description=task.description,
        status=task.status,
        priority=task.priority,
        due_date=task.due_date,
        owner_id=user.id,
    )
    db.add(new_task)
    db.commit()
    db.refresh(new_task)
    logger.info("User %s created task %s", user.id, new_task.id)

    return {"success": True, "message": "Task created successfully", "task": TaskOut.model_validate(new_task).to_json()}


@app.get("/api/tasks/{task_id}")
def get_task(task_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    task = _owned_task(db, task_id, user)
    return {"success": True, "task": TaskOut.model_validate(task).to_json()}


@app.put("/api/tasks/{task_id}")
def update_task(
    task_id: int,
    task: TaskUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user)
):
    existing_task = _owned_task(db, task_id, user)

    changes = task.changes()
    for field, value in changes.items():
        setattr(existing_task, field, value)
    if changes:
        db.commit()
        db.refresh(existing_task)
        logger.debug("User %s updated task %s: %s", user.id, task_id, sorted(changes))

    return {"success": True, "message": "Task updated successfully", "task": TaskOut.model_validate(existing_task).to_json()}


@app.delete("/api/tasks/{task_id}")
def delete_task(task_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    task = _owned_task(db, task_id, user)
    deleted = TaskOut.model_validate(task).to_json()

    db.delete(task)
    db.commit()
    logger.info("User %s deleted task %s", user.id, task_id)

    return {"success": True, "message": "Task deleted successfully", "task": deleted}


# -----------------------------
# Profile
# -----------------------------
@app.get("/api/user/profile")
def get_profile(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    tasks = [TaskOut.model_validate(t) for t in db.query(Task).filter(Task.owner_id == user.id)]
    return {
        "success": True,
        "user": UserOut.model_validate(user).model_dump(by_alias=True, mode="json"),
        "analytics": compute_analytics(tasks),
    }


@app.put("/api/user/profile")
def update_profile(body: ProfileUpdate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    if body.email != user.email:
        taken = db.query(User).filter(User.email == body.email, User.id != user.id).first()
        if taken:
            raise ConflictError("Email address is already in use")

    password_errors = body.password_change_errors()
    if password_errors:
        raise ValidationError(details=password_errors)

    if body.new_password:
        if not user.password:
            raise ValidationError("Cannot change password for OAuth accounts")
        if not verify_password(body.current_password, user.password):
            raise ValidationError("Current password is incorrect")
        user.password = get_password_hash(body.new_password)

    user.name = body.name
    user.email = body.email
    if "bio" in body.model_fields_set:
        user.bio = body.bio
    if "phone" in body.model_fields_set:
        user.phone = body.phone

    db.commit()
    db.refresh(user)

    return {
        "success": True,
        "message": "Profile updated successfully",
        "user": UserOut.model_validate(user).model_dump(by_alias=True, mode="json"),
    }


@app.delete("/api/user/profile")
def delete_account(body: AccountDelete, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    if not user.password and user.provider != "local":
        if not body.confirm_oauth:
            raise ValidationError("Confirmation required for OAuth account deletion")
    else:
        if not body.password:
            raise ValidationError("Password confirmation required")
        if not verify_password(body.password, user.password):
            raise ValidationError("Invalid password")

    uploads.remove_avatar_file(user.avatar)
    db.query(Task).filter(Task.owner_id == user.id).delete(synchronize_session=False)
    db.delete(user)
    db.commit()
    logger.info("Deleted account %s", user.id)

    return {"success": True, "message": "Account deleted successfully"}


@app.post("/api/user/avatar")
def upload_avatar(
    avatar: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if avatar is None:
        raise ValidationError("No avatar file provided")

    avatar_url = uploads.save_avatar(user.id, avatar)
    uploads.remove_avatar_file(user.avatar)
    user.avatar = avatar_url
    db.commit()

    return {"success": True, "message": "Avatar uploaded successfully", "avatarUrl": avatar_url}


@app.delete("/api/user/avatar")
def remove_avatar(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    uploads.remove_avatar_file(user.avatar)
    user.avatar = None
    db.commit()

    return {"success": True, "message": "Avatar removed successfully"}


@app.get("/")
def read_root():
    return {"message": "Task Manager API running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
