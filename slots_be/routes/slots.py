from concurrent.futures import TimeoutError as FutureTimeoutError

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import select

from ..models import db, SlotSpin
from ..schemas import (
    CreateGameSchema, UpdateSettingsSchema, SpinRequestSchema, AutoplayRequestSchema,
    SessionStateSchema, SpinResultSchema, SlotSpinListSchema
)
from ..services.slot_game import SlotGame
from ..services import spin_session
from ..utils.game_config import load_game_config
from ..exceptions import (
    NotFoundException, ValidationException, GameLogicException, InsufficientFundsException,
    InvalidSpinOutcomeException, InternalServerErrorException
)
from ..error_codes import ErrorCodes

slots_bp = Blueprint('slots', __name__, url_prefix='/api/slots')

MAX_HISTORY_PER_PAGE = 100


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        if request.content_length:
            raise ValidationException("Invalid request format: Not valid JSON.")
        data = {}
    if not isinstance(data, dict):
        raise ValidationException("Request body must be a JSON object.")
    return data


def _get_game(game_id):
    game = current_app.game_loop.get_game(game_id)
    if game is None:
        raise NotFoundException(f"Game {game_id} not found", error_code=ErrorCodes.GAME_NOT_FOUND)
    return game


def _check_bet_limits(game_config, bet):
    limits = game_config['bet_limits']
    if limits.get('min') is not None and bet < limits['min']:
        raise ValidationException(f"Bet must be at least {limits['min']}.", error_code=ErrorCodes.INVALID_BET)
    if limits.get('max') is not None and bet > limits['max']:
        raise ValidationException(f"Bet must not exceed {limits['max']}.", error_code=ErrorCodes.INVALID_BET)


def _state_response(game):
    state = current_app.game_loop.call(game.snapshot)
    return SessionStateSchema().dump(state)


def _run_spin(game, coro):
    """
    Runs a spin coroutine on the game loop. Returns None when it outlasts
    SPIN_REQUEST_TIMEOUT_SECONDS; the spin keeps resolving on the loop.
    """
    timeout = current_app.config['SPIN_REQUEST_TIMEOUT_SECONDS']
    try:
        return current_app.game_loop.run(coro, timeout=timeout)
    except FutureTimeoutError:
        current_app.logger.warning(f"Spin on game {game.game_id} still resolving after {timeout}s")
        return None


def _spin_response(game, result):
    if result is None:
        return jsonify({'status': True, 'pending': True, 'game': _state_response(game)}), 202
    if result.rejection:
        _raise_for_rejection(result)
    return jsonify({
        'status': True,
        'pending': False,
        'spin': SpinResultSchema().dump(result.to_dict()),
        'game': _state_response(game),
    }), 200


def _raise_for_rejection(result):
    """Maps a rejected SpinResult onto the HTTP error it represents."""
    reason = result.rejection
    if reason == spin_session.REJECT_INSUFFICIENT_BALANCE:
        raise InsufficientFundsException(
            "Insufficient balance for this spin.", details={'cost': str(result.cost)}
        )
    if reason == spin_session.REJECT_SPINNING:
        raise GameLogicException("A spin is already in progress.", status_code=409,
                                 error_code=ErrorCodes.SPIN_IN_PROGRESS)
    if reason == spin_session.REJECT_RATE_LIMITED:
        raise GameLogicException("Spins are coming in too fast.", status_code=429,
                                 error_code=ErrorCodes.SPIN_RATE_LIMITED)
    if reason == spin_session.REJECT_FEATURE_UNAVAILABLE:
        raise GameLogicException("Feature buy is not available during a bonus round.",
                                 error_code=ErrorCodes.FEATURE_UNAVAILABLE)
    if reason == spin_session.REJECT_INVALID_OUTCOME:
        raise InvalidSpinOutcomeException(details={'errors': list(result.errors)})
    if reason == spin_session.REJECT_ERROR:
        raise InternalServerErrorException("The spin could not be resolved.")
    raise GameLogicException(f"Spin rejected: {reason}")


@slots_bp.route('/configs/<slot_short_name>', methods=['GET'])
def get_slot_config(slot_short_name):
    """Client-facing view of a slot definition"""
    try:
        game_config = load_game_config(slot_short_name, current_app.config.get('SLOT_CONFIG_DIR'))
    except FileNotFoundError:
        raise NotFoundException(f"Slot '{slot_short_name}' not found", error_code=ErrorCodes.GAME_NOT_FOUND)
    except ValueError as e:
        current_app.logger.error(f"Broken slot configuration '{slot_short_name}': {e}")
        raise GameLogicException("Configuration not available for this slot.", status_code=500,
                                 error_code=ErrorCodes.SLOT_CONFIG_ERROR)

    return jsonify({
        'status': True,
        'config': {
            'name': game_config['name'],
            'short_name': game_config['short_name'],
            'rows': game_config['rows'],
            'columns': game_config['columns'],
            'match_model': game_config['match_model'],
            'paylines': game_config['paylines'],
            'scatter_symbol_id': game_config['scatter_symbol_id'],
            'wild_symbol_ids': game_config['wild_symbol_ids'],
            'symbols': [
                {'id': s['id'], 'name': s['name'], 'is_scatter': s['is_scatter'], 'is_wild': s['is_wild']}
                for s in game_config['symbols'].values()
            ],
            'pay_table': {str(k): v for k, v in game_config['pay_table'].items()},
            'free_spins': {
                'base': {str(k): v for k, v in game_config['free_spins']['base'].items()},
                'retrigger': {str(k): v for k, v in game_config['free_spins']['retrigger'].items()},
            },
            'bet_limits': {k: (str(v) if v is not None else None) for k, v in game_config['bet_limits'].items()},
        }
    }), 200


@slots_bp.route('/games', methods=['POST'])
def create_game():
    data = CreateGameSchema().load(_json_body())
    app_config = current_app.config
    slot_short_name = data['slot'] or app_config['DEFAULT_SLOT']

    try:
        game_config = load_game_config(slot_short_name, app_config.get('SLOT_CONFIG_DIR'))
    except FileNotFoundError:
        raise NotFoundException(f"Slot '{slot_short_name}' not found", error_code=ErrorCodes.GAME_NOT_FOUND)

    bet = data['bet'] if data['bet'] is not None else app_config['DEFAULT_BET']
    _check_bet_limits(game_config, bet)

    def factory():
        return SlotGame.from_app_config(
            app_config, slot_short_name,
            balance=data['balance'], bet=bet,
            await_presentation=data['await_presentation'],
        )
    game = current_app.game_loop.create_game(factory)

    current_app.logger.info(f"Game {game.game_id} created on slot '{slot_short_name}'")
    return jsonify({'status': True, 'game': _state_response(game)}), 201


@slots_bp.route('/games/<game_id>', methods=['GET'])
def get_game(game_id):
    game = _get_game(game_id)
    return jsonify({'status': True, 'game': _state_response(game)}), 200


@slots_bp.route('/games/<game_id>', methods=['PATCH'])
def update_settings(game_id):
    game = _get_game(game_id)
    data = UpdateSettingsSchema().load(_json_body())
    if 'bet' in data:
        _check_bet_limits(game.game_config, data['bet'])

    applied = current_app.game_loop.call(game.update_settings, **data)
    if not applied:
        raise GameLogicException("Bet settings cannot change during a spin or bonus round.", status_code=409)
    return jsonify({'status': True, 'game': _state_response(game)}), 200


@slots_bp.route('/games/<game_id>', methods=['DELETE'])
def end_game(game_id):
    """Stops autoplay, unregisters the game and closes its history session"""
    game = _get_game(game_id)
    final_state = _state_response(game)
    current_app.game_loop.remove_game(game_id)
    if current_app.spin_history is not None:
        current_app.spin_history.close_session(game_id)

    current_app.logger.info(f"Game {game_id} ended with balance {final_state['balance']}")
    return jsonify({'status': True, 'game': final_state}), 200


@slots_bp.route('/games/<game_id>/spin', methods=['POST'])
def spin(game_id):
    game = _get_game(game_id)
    data = SpinRequestSchema().load(_json_body())
    return _spin_response(game, _run_spin(game, game.spin(data['grid'])))


@slots_bp.route('/games/<game_id>/buy-feature', methods=['POST'])
def buy_feature(game_id):
    game = _get_game(game_id)
    return _spin_response(game, _run_spin(game, game.buy_feature()))


@slots_bp.route('/games/<game_id>/autoplay', methods=['POST'])
def start_autoplay(game_id):
    game = _get_game(game_id)
    data = AutoplayRequestSchema().load(_json_body())
    current_app.game_loop.call(game.start_autoplay, data['spins'])
    return jsonify({'status': True, 'game': _state_response(game)}), 202


@slots_bp.route('/games/<game_id>/autoplay', methods=['DELETE'])
def stop_autoplay(game_id):
    game = _get_game(game_id)
    current_app.game_loop.call(game.stop_autoplay)
    return jsonify({'status': True, 'game': _state_response(game)}), 200


@slots_bp.route('/games/<game_id>/history', methods=['GET'])
def get_history(game_id):
    _get_game(game_id)
    page = request.args.get('page', 1, type=int)
    per_page = min(request.args.get('per_page', 20, type=int), MAX_HISTORY_PER_PAGE)

    query = select(SlotSpin).filter_by(game_session_id=game_id).order_by(SlotSpin.spin_number.desc())
    spins = db.paginate(query, page=page, per_page=per_page, error_out=False)
    return jsonify({'status': True, 'history': SlotSpinListSchema().dump(spins)}), 200
