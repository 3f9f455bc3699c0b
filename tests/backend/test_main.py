import asyncio
import json
from types import SimpleNamespace

import pytest

from backend.core import config, errors
from backend.main import app, handle_core_error


def _request(path: str = '/appointments/1/accept') -> SimpleNamespace:
    return SimpleNamespace(method='POST', url=SimpleNamespace(path=path))


@pytest.mark.parametrize(
    ('error', 'status_code', 'kind'),
    [
        (errors.ValidationError('Bad start.', field='start_time'), 400, 'validation'),
        (errors.AuthorizationError('Not yours.'), 403, 'forbidden'),
        (errors.NotFoundError('Missing.'), 404, 'not_found'),
        (errors.ConflictError('Already accepted.'), 409, 'conflict'),
        (errors.IntegrityError('Broken ledger.'), 500, 'integrity'),
        (errors.SignatureMismatchError('Invalid webhook signature.'), 401, 'integrity'),
    ],
)
def test_core_errors_render_kind_and_status(error, status_code: int, kind: str) -> None:
    response = asyncio.run(handle_core_error(_request(), error))

    assert response.status_code == status_code
    body = json.loads(response.body)
    assert body['kind'] == kind
    assert body['detail'] == error.detail
    assert body['field'] == error.field


def test_all_routers_are_mounted() -> None:
    paths = set(app.openapi()['paths'])

    assert '/auth/me' in paths
    assert '/availability/{professional_id}/slots' in paths
    assert '/appointments/{appointment_id}/accept' in paths
    assert '/payments/webhook' in paths
    assert '/wallet/admin/payouts/{payout_id}/approve' in paths
    assert '/professionals/me/profile' in paths


def test_production_refuses_the_dev_bypass(monkeypatch) -> None:
    monkeypatch.setattr(config, 'APP_ENV', 'production')
    monkeypatch.setattr(config, 'JWT_SECRET_KEY', 'a-real-secret')
    monkeypatch.setattr(config, 'PAYSTACK_SECRET_KEY', 'sk_live_x')
    monkeypatch.setattr(config, 'DEV_AUTH_EMAIL', 'dev@example.com')

    with pytest.raises(RuntimeError):
        config.validate_runtime_config()

    monkeypatch.setattr(config, 'DEV_AUTH_EMAIL', '')
    config.validate_runtime_config()
