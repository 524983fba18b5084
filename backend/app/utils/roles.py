from fastapi import Depends, HTTPException
from .dependencies import get_current_user


def _role_required(required_role: str):
    def check_role(user=Depends(get_current_user)):
        if user.get("role") != required_role:
            raise HTTPException(status_code=403, detail=f"{required_role.capitalize()} access only")
        return user
    return check_role


student_only = _role_required("student")
employer_only = _role_required("employer")
