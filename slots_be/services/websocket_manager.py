"""
WebSocket Manager for Real-time Slot Presentation
Forwards every outbound event of a game's bus to the Socket.IO room of
that game and relays presentation acknowledgements and player commands
back onto the game loop.
"""

from flask_socketio import emit, join_room, leave_room
from flask import request
from datetime import datetime, timezone
from decimal import Decimal
import logging

from ..utils import event_bus as events

logger = logging.getLogger(__name__)

# Socket.IO event name -> bus acknowledgement event
ACK_EVENTS = {
    'animation_removal_done': events.ANIMATION_REMOVAL_DONE,
    'animation_refill_done': events.ANIMATION_REFILL_DONE,
}


def room_for(game_id):
    return f'game_{game_id}'


def to_jsonable(value):
    """Converts bus payload values (Decimal, tuples, frozensets, grids) to JSON types"""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    if hasattr(value, 'to_list'):
        return value.to_list()
    return value


class WebSocketManager:
    def __init__(self, app=None, socketio=None, game_loop=None):
        self.socketio = socketio
        self.game_loop = game_loop
        self.connected_clients = {}  # socket_id -> {rooms, connected_at}
        self.game_rooms = {}  # game_id -> set of socket ids

        if app and socketio:
            self.init_app(app)

    def init_app(self, app):
        """Initialize WebSocket handlers"""
        self.socketio.on_event('connect', self.handle_connect)
        self.socketio.on_event('disconnect', self.handle_disconnect)
        self.socketio.on_event('join_game', self.handle_join_game)
        self.socketio.on_event('leave_game', self.handle_leave_game)
        self.socketio.on_event('spin', self.handle_spin)
        self.socketio.on_event('autoplay_start', self.handle_autoplay_start)
        self.socketio.on_event('autoplay_stop', self.handle_autoplay_stop)
        for socket_event in ACK_EVENTS:
            self.socketio.on_event(socket_event, self._ack_handler(socket_event))

        if self.game_loop is not None:
            self.game_loop.add_game_created_hook(self.attach_game)

    def handle_connect(self, auth=None):
        """Handle WebSocket connection"""
        socket_id = request.sid
        self.connected_clients[socket_id] = {
            'rooms': set(),
            'connected_at': datetime.now(timezone.utc)
        }
        logger.info(f"Client connected via WebSocket (socket: {socket_id})")
        emit('connection_status', {'status': 'connected'})
        return True

    def handle_disconnect(self, *args):
        """Handle WebSocket disconnection"""
        socket_id = request.sid
        client = self.connected_clients.pop(socket_id, None)
        if client:
            for game_id in client['rooms']:
                self.game_rooms.get(game_id, set()).discard(socket_id)
        logger.info(f"Client disconnected from WebSocket (socket: {socket_id})")

    def _resolve_game(self, data):
        game_id = (data or {}).get('game_id')
        if not game_id:
            emit('error', {'message': 'game_id is required'})
            return None
        game = self.game_loop.get_game(game_id) if self.game_loop else None
        if game is None:
            emit('error', {'message': f'Game {game_id} not found'})
            return None
        return game

    def handle_join_game(self, data):
        """Handle joining a game room"""
        game = self._resolve_game(data)
        if game is None:
            return

        socket_id = request.sid
        join_room(room_for(game.game_id))
        self.game_rooms.setdefault(game.game_id, set()).add(socket_id)
        self.connected_clients.setdefault(socket_id, {'rooms': set(), 'connected_at': datetime.now(timezone.utc)})
        self.connected_clients[socket_id]['rooms'].add(game.game_id)

        logger.info(f"Socket {socket_id} joined game {game.game_id}")
        state = self.game_loop.call(game.snapshot)
        emit('game_joined', {'game_id': game.game_id, 'state': to_jsonable(state)})

    def handle_leave_game(self, data):
        """Handle leaving a game room"""
        game_id = (data or {}).get('game_id')
        if not game_id:
            emit('error', {'message': 'game_id is required'})
            return

        socket_id = request.sid
        leave_room(room_for(game_id))
        self.game_rooms.get(game_id, set()).discard(socket_id)
        if socket_id in self.connected_clients:
            self.connected_clients[socket_id]['rooms'].discard(game_id)
        logger.info(f"Socket {socket_id} left game {game_id}")
        emit('game_left', {'game_id': game_id})

    def handle_spin(self, data):
        """Starts a spin; the outcome streams back through the room's events"""
        game = self._resolve_game(data)
        if game is None:
            return
        self.game_loop.submit(game.spin())

    def handle_autoplay_start(self, data):
        game = self._resolve_game(data)
        if game is None:
            return
        try:
            spins = int(data.get('spins', 0))
        except (TypeError, ValueError):
            spins = 0
        if spins <= 0:
            emit('error', {'message': 'spins must be a positive integer'})
            return
        self.game_loop.call(game.start_autoplay, spins)

    def handle_autoplay_stop(self, data):
        game = self._resolve_game(data)
        if game is None:
            return
        self.game_loop.call(game.stop_autoplay)

    def _ack_handler(self, socket_event):
        bus_event = ACK_EVENTS[socket_event]

        def handle_ack(data):
            game = self._resolve_game(data)
            if game is None:
                return
            cascade_index = data.get('cascade_index')
            if cascade_index is not None and not isinstance(cascade_index, int):
                emit('error', {'message': 'cascade_index must be an integer'})
                return
            self.game_loop.call(game.acknowledge, bus_event, cascade_index)
        handle_ack.__name__ = f'handle_{socket_event}'
        return handle_ack

    # Event Broadcasting

    def attach_game(self, game):
        """Subscribes a forwarder for every outbound event of `game`"""
        def forward(event, payload):
            if event in events.OUTBOUND_EVENTS:
                self.broadcast_game_event(game.game_id, event, payload)
        return game.bus.subscribe(events.ALL_EVENTS, forward)

    def broadcast_game_event(self, game_id, event, payload):
        if not self.socketio:
            return

        self.socketio.emit(
            event,
            {
                'type': event,
                'game_id': game_id,
                'payload': to_jsonable(payload),
                'timestamp': datetime.now(timezone.utc).isoformat()
            },
            to=room_for(game_id)
        )
        logger.debug(f"Broadcasted '{event}' to {len(self.game_rooms.get(game_id, set()))} sockets of game {game_id}")

    def get_connected_clients_count(self):
        return len(self.connected_clients)
