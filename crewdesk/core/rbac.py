from fastapi import HTTPException, status


def is_admin_like(role: str) -> bool:
    return role in {"admin", "manager", "hr"}


def require_admin(user: dict) -> None:
    if not is_admin_like(str(user.get("role", ""))):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


def can_act_on_job(user: dict, job) -> bool:
    if is_admin_like(str(user.get("role", ""))):
        return True
    # workers can only act on jobs they are assigned to
    return str(user.get("id", "")) in job.assigned_user_ids
