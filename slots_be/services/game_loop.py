"""
Slot Game Loop Service
Hosts every live SlotGame on one asyncio event loop running in a
background thread. Flask and Socket.IO handlers talk to games only
through `run` / `call`, which marshal work onto that loop.
"""

import asyncio
import logging
import threading

logger = logging.getLogger(__name__)


class GameLoop:
    """Owns the event loop thread and the registry of live games"""

    def __init__(self, app=None):
        self.app = app
        self.running = False
        self.loop = None
        self.loop_thread = None
        self.games = {}  # game_id -> SlotGame
        self._game_created_hooks = []
        self._ready = threading.Event()
        self._lock = threading.Lock()

    def start(self):
        """Start the event loop in a background thread"""
        with self._lock:
            if self.running:
                logger.warning("Slot game loop is already running")
                return
            self.running = True
            self._ready.clear()
            self.loop_thread = threading.Thread(target=self._run_loop, name='slot-game-loop', daemon=True)
            self.loop_thread.start()
        self._ready.wait()
        logger.info("Slot game loop started")

    def stop(self):
        """Stop the event loop; in-flight spins are abandoned"""
        with self._lock:
            if not self.running:
                return
            self.running = False
            self.loop.call_soon_threadsafe(self.loop.stop)
        if self.loop_thread:
            self.loop_thread.join(timeout=5)
        logger.info("Slot game loop stopped")

    def _run_loop(self):
        """Main loop - runs in background thread"""
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)
        self._ready.set()
        try:
            self.loop.run_forever()
        finally:
            pending = asyncio.all_tasks(self.loop)
            for task in pending:
                task.cancel()
            if pending:
                self.loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            self.loop.close()

    def run(self, coro, timeout=None):
        """Runs a coroutine on the game loop and blocks for its result"""
        if not self.running:
            self.start()
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout)

    def submit(self, coro):
        """Schedules a coroutine on the game loop without waiting for it"""
        if not self.running:
            self.start()
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def call(self, fn, *args, timeout=None, **kwargs):
        """Runs a plain callable on the game loop thread and returns its result"""
        async def _invoke():
            return fn(*args, **kwargs)
        return self.run(_invoke(), timeout)

    # --- Game registry ---

    def add_game_created_hook(self, hook):
        """`hook(game)` runs on the loop thread for every game created afterwards"""
        self._game_created_hooks.append(hook)

    def create_game(self, factory):
        """Builds a game with `factory()` on the loop thread and registers it"""
        return self.call(self._register_game, factory)

    def _register_game(self, factory):
        game = factory()
        self.games[game.game_id] = game
        for hook in self._game_created_hooks:
            hook(game)
        logger.info(f"Registered game {game.game_id} ({len(self.games)} live)")
        return game

    def get_game(self, game_id):
        return self.games.get(game_id)

    def remove_game(self, game_id):
        game = self.games.pop(game_id, None)
        if game is not None and self.running:
            self.call(game.stop_autoplay)
        return game
