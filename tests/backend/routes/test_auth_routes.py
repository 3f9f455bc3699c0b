from fastapi.security import HTTPAuthorizationCredentials

from backend.auth.dependencies import get_current_user
from backend.auth.jwt_handler import create_access_token
from backend.models.user import UserRole
from backend.routes.auth_routes import CurrentUserResponse, me


def test_me_returns_the_authenticated_user(db, professional) -> None:
    credentials = HTTPAuthorizationCredentials(scheme='Bearer', credentials=create_access_token(professional.email))
    user = get_current_user(credentials=credentials, db=db)

    response = CurrentUserResponse.model_validate(me(current_user=user))

    assert response.id == professional.id
    assert response.email == 'doctor@example.com'
    assert response.role == UserRole.PROFESSIONAL
