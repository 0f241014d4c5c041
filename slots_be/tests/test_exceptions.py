import pytest
from marshmallow import ValidationError

from slots_be.app import create_app
from slots_be.config import TestingConfig
from slots_be.exceptions import (
    AppException,
    ValidationException,
    NotFoundException,
    InsufficientFundsException,
    GameLogicException,
    InvalidSpinOutcomeException,
    InternalServerErrorException
)
from slots_be.error_codes import ErrorCodes


def test_app_exception_instantiation():
    exc = AppException(
        error_code="TEST_001",
        status_message="Test message",
        status_code=400,
        details={"field": "value"},
        action_button={"text": "Retry", "actionType": "RETRY_ACTION"}
    )

    assert exc.error_code == "TEST_001"
    assert exc.status_message == "Test message"
    assert exc.status_code == 400
    assert exc.details == {"field": "value"}
    assert exc.action_button == {"text": "Retry", "actionType": "RETRY_ACTION"}
    assert str(exc) == "Test message"


def test_app_exception_defaults():
    exc = AppException(error_code="TEST_002", status_message="Default test", status_code=500)
    assert exc.details == {}
    assert exc.action_button == {}


@pytest.mark.parametrize("exc, error_code, status_code", [
    (ValidationException(), ErrorCodes.VALIDATION_ERROR, 422),
    (NotFoundException(), ErrorCodes.NOT_FOUND, 404),
    (InsufficientFundsException(), ErrorCodes.INSUFFICIENT_FUNDS, 400),
    (GameLogicException(), ErrorCodes.GAME_LOGIC_ERROR, 400),
    (InvalidSpinOutcomeException(), ErrorCodes.INVALID_SPIN_OUTCOME, 422),
    (InternalServerErrorException(), ErrorCodes.INTERNAL_SERVER_ERROR, 500),
])
def test_subclass_defaults(exc, error_code, status_code):
    assert exc.error_code == error_code
    assert exc.status_code == status_code
    assert isinstance(exc, AppException)


def test_game_logic_exception_status_override():
    exc = GameLogicException("A spin is already in progress.", status_code=409, error_code=ErrorCodes.SPIN_IN_PROGRESS)
    assert exc.status_code == 409
    assert exc.error_code == ErrorCodes.SPIN_IN_PROGRESS


def test_not_found_exception_custom_code():
    exc = NotFoundException("Game abc not found", error_code=ErrorCodes.GAME_NOT_FOUND)
    assert exc.error_code == ErrorCodes.GAME_NOT_FOUND
    with pytest.raises(NotFoundException):
        raise exc


class TestAppErrorHandlers:

    @pytest.fixture(scope="class")
    def app(self):
        app = create_app(TestingConfig)

        @app.route('/test/app_exception')
        def route_app_exception():
            raise AppException(
                error_code="TEST_APP_EXC",
                status_message="This is an AppException",
                status_code=450,
                details={"info": "some app details"},
                action_button={"text": "Click Me", "actionType": "NAVIGATE", "actionPayload": "/home"}
            )

        @app.route('/test/insufficient_funds_exception')
        def route_insufficient_funds_exception():
            raise InsufficientFundsException(status_message="Not enough balance")

        @app.route('/test/marshmallow_validation_error')
        def route_marshmallow_validation_error():
            raise ValidationError({"bet": ["Not a valid number."]})

        @app.route('/test/unexpected_error')
        def route_unexpected_error():
            raise ZeroDivisionError("boom")

        yield app
        app.game_loop.stop()

    @pytest.fixture
    def client(self, app):
        return app.test_client()

    def test_app_exception(self, client):
        response = client.get('/test/app_exception', headers={'X-Request-ID': 'req-42'})
        assert response.status_code == 450
        data = response.get_json()
        assert data['status'] is False
        assert data['request_id'] == 'req-42'
        assert data['error_code'] == "TEST_APP_EXC"
        assert data['status_message'] == "This is an AppException"
        assert data['details'] == {"info": "some app details"}
        assert data['action_button']['actionType'] == "NAVIGATE"

    def test_insufficient_funds_exception(self, client):
        response = client.get('/test/insufficient_funds_exception')
        assert response.status_code == 400
        data = response.get_json()
        assert data['error_code'] == ErrorCodes.INSUFFICIENT_FUNDS
        assert data['status_message'] == "Not enough balance"

    def test_marshmallow_validation_error(self, client):
        response = client.get('/test/marshmallow_validation_error')
        assert response.status_code == 422
        data = response.get_json()
        assert data['error_code'] == ErrorCodes.VALIDATION_ERROR
        assert data['details']['errors'] == {"bet": ["Not a valid number."]}

    def test_unexpected_error_is_hidden(self, client):
        response = client.get('/test/unexpected_error')
        assert response.status_code == 500
        data = response.get_json()
        assert data['error_code'] == ErrorCodes.INTERNAL_SERVER_ERROR
        assert 'boom' not in data['status_message']

    def test_method_not_allowed(self, client):
        response = client.put('/api/slots/games')
        assert response.status_code == 405
        assert response.get_json()['error_code'] == ErrorCodes.GENERIC_ERROR

    def test_request_id_is_generated(self, client):
        response = client.get('/test/insufficient_funds_exception')
        assert response.headers['X-Request-ID']
        assert response.get_json()['request_id'] == response.headers['X-Request-ID']
