"""
FrameApp - the photo frame core process.

Wires the photo cache, reconciler, slideshow scheduler and sync service
together and talks to the display shell over ZeroMQ:
- publishes PAGE messages for every rendered slideshow page
- publishes STATUS messages (online / offline / empty, settings changes)
- receives COMMAND messages (navigate, set_interval, update_settings, ...)
"""

import argparse
import os
import signal
import threading
from typing import Any, Dict, Iterable, Optional

from photoframe.common.config import Config, get_config
from photoframe.common.ipc import Message, MessagePublisher, MessageSubscriber, MessageType
from photoframe.common.logger import setup_logger
from photoframe.common.photo_client import PhotoClient
from photoframe.player.cache_store import PhotoCacheStore
from photoframe.player.reconciler import DisplaySequence, PhotoReconciler, PhotoRef
from photoframe.player.scheduler import Page, SlideshowScheduler
from photoframe.player.settings import FrameSettings
from photoframe.player.sync_service import SyncService

logger = setup_logger(__name__)

SERVICE_NAME = "photoframe"

# Origin used when neither the shell, the settings nor the config provide one
FALLBACK_SERVER_URL = "http://localhost:3000"


def resolve_server_url(
    shell_url: Optional[str],
    settings: FrameSettings,
    config: Optional[Config] = None
) -> str:
    """
    Pick the upload server origin.

    Order: the desktop shell's value, the persisted setting, the
    configuration (including PHOTOFRAME_SERVER_URL), then localhost.
    """
    for candidate in (shell_url, settings.server_url, config.server_url if config else None):
        if candidate:
            return candidate.rstrip('/')
    return FALLBACK_SERVER_URL


class FrameApp:
    """
    The photo frame core.

    Startup flow:
    1. Load settings and resolve the server origin
    2. Open the local photo cache
    3. Start the sync service (first pass starts the slideshow)
    4. Listen for shell commands until shutdown
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        shell_server_url: Optional[str] = None,
        settings_dir: Optional[str] = None,
        cache_path: Optional[str] = None,
        enable_ipc: bool = True
    ):
        """
        Args:
            config: Application configuration (global config if None)
            shell_server_url: Server origin provided by the desktop shell
            settings_dir: Directory of settings.json (config value if None)
            cache_path: Cache database file (config value if None)
            enable_ipc: Open the ZeroMQ sockets on start()
        """
        self._config = config or get_config()
        self._enable_ipc = enable_ipc
        self._running = False
        self._stop_event = threading.Event()

        # IPC (opened in start())
        self._publisher: Optional[MessagePublisher] = None
        self._commands: Optional[MessageSubscriber] = None
        self._command_thread: Optional[threading.Thread] = None

        self.settings = FrameSettings(
            settings_dir or str(self._config.settings_dir),
            on_changed=self._on_settings_changed
        )

        self.server_url = resolve_server_url(shell_server_url, self.settings, self._config)
        if shell_server_url and self.settings.server_url != self.server_url:
            try:
                self.settings.update(server_url=self.server_url)
            except OSError as e:
                logger.error("Could not persist server url: %s", e)

        self.store = PhotoCacheStore(
            cache_path or self._config.cache_db_path,
            max_items=self._config.get('cache.max_items', 300)
        )
        self.client = PhotoClient(
            self.server_url,
            timeout=self._config.get('sync.request_timeout', PhotoClient.REQUEST_TIMEOUT),
            download_timeout=self._config.get('sync.download_timeout', PhotoClient.DOWNLOAD_TIMEOUT)
        )
        self.scheduler = SlideshowScheduler(
            settings=self.settings,
            on_render=self._on_render,
            page_size=self._config.get('display.page_size', 15),
            min_interval=self._config.get('slideshow.min_interval', 10),
            max_interval=self._config.get('slideshow.max_interval', 35)
        )
        self.reconciler = PhotoReconciler(
            self.store,
            self.client,
            self.server_url,
            max_display=self._config.get('display.max_items', 300),
            backfill_workers=self._config.get('sync.backfill_workers', 2)
        )
        self.sync_service = SyncService(
            self.reconciler,
            self.scheduler,
            sync_interval=self._config.get('sync.interval_seconds', SyncService.DEFAULT_SYNC_INTERVAL),
            on_sequence=self._on_sequence
        )

        logger.info("FrameApp initialized - server: %s", self.server_url)

    # ─── Lifecycle ──────────────────────────────────────────────────

    def start(self) -> None:
        """Start background services."""
        if self._running:
            return
        self._running = True
        self._stop_event.clear()

        if self._enable_ipc:
            self._open_ipc()

        self.sync_service.start()
        logger.info("FrameApp started")

    def _open_ipc(self) -> None:
        self._publisher = MessagePublisher(self._config.get('ipc.pub_port', 5560), SERVICE_NAME)
        self._commands = MessageSubscriber(
            self._config.get('ipc.command_host', 'localhost'),
            self._config.get('ipc.command_port', 5561),
            SERVICE_NAME,
            topics=(MessageType.COMMAND,)
        )
        self._command_thread = threading.Thread(
            target=self._command_loop,
            name="shell-commands",
            daemon=True
        )
        self._command_thread.start()

    def _command_loop(self) -> None:
        """Receive shell commands until shutdown."""
        while self._running:
            message = self._commands.receive(timeout_ms=500)
            if message is None:
                continue
            try:
                reply = self.handle_command(message)
            except Exception as e:
                logger.error("Error handling command %s: %s", message.data, e)
                continue
            if not reply.get('ok', False):
                logger.warning("Command failed: %s", reply.get('error'))

    def run(self) -> None:
        """
        Run the frame (blocking) until SIGINT/SIGTERM.
        """
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        self.start()
        try:
            while not self._stop_event.wait(timeout=1.0):
                pass
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received")

        self.shutdown()

    def _signal_handler(self, signum: int, frame) -> None:
        """Handle system signals."""
        logger.info("Received signal: %s", signal.Signals(signum).name)
        self._stop_event.set()

    def shutdown(self) -> bool:
        """
        Stop everything and clear the photo cache.

        The cache clear is best effort: it gets shutdown.grace_seconds to
        finish and is abandoned afterwards.

        Returns:
            True if the cache was cleared within the grace period
        """
        logger.info("Shutting down FrameApp")
        self._running = False
        self._stop_event.set()

        self.sync_service.stop()
        self.scheduler.stop()
        self.reconciler.shutdown()

        grace = self._config.get('shutdown.grace_seconds', 2.0)
        result = {'cleared': False}

        def clear_cache():
            result['cleared'] = self.store.clear()

        clearer = threading.Thread(target=clear_cache, name="cache-clear", daemon=True)
        clearer.start()
        clearer.join(timeout=grace)
        if clearer.is_alive():
            logger.warning("Cache clear did not finish within %ss, abandoning it", grace)
        else:
            self.store.close()

        self._close_ipc()
        logger.info("FrameApp stopped")
        return result['cleared']

    def _close_ipc(self) -> None:
        if self._command_thread and self._command_thread.is_alive():
            self._command_thread.join(timeout=2)
        if self._commands:
            self._commands.close()
            self._commands = None
        if self._publisher:
            self._publisher.close()
            self._publisher = None

    # ─── Shell commands ─────────────────────────────────────────────

    def handle_command(self, message: Any) -> Dict[str, Any]:
        """
        Dispatch a shell command.

        Args:
            message: Message or plain dict with a 'command' key

        Returns:
            Reply dictionary with 'ok' and command-specific fields
        """
        data = message.data if isinstance(message, Message) else dict(message)
        command = data.get('command')

        try:
            if command == 'navigate':
                return {'ok': self.scheduler.navigate(data.get('direction', 'next')),
                        'page': self.scheduler.current_page}

            if command == 'set_interval':
                return {'ok': True, 'seconds': self.scheduler.set_interval(data.get('seconds'))}

            if command == 'update_settings':
                changed = self.settings.update(**data.get('settings', {}))
                return {'ok': True, 'changed': sorted(changed)}

            if command == 'sync':
                sequence = self.sync_service.sync_now()
                return {'ok': sequence is not None,
                        'status': sequence.status.value if sequence else None}

            if command == 'delete_all':
                reply = self.client.delete_all()
                if not isinstance(reply, dict):
                    return {'ok': False, 'error': f"Unexpected delete_all reply: {reply!r}"}
                if reply.get('ok'):
                    self.store.clear()
                    self.sync_service.sync_now()
                return reply

            if command == 'status':
                return {'ok': True, **self.get_status()}

        except (ValueError, TypeError) as e:
            return {'ok': False, 'error': str(e)}
        except OSError as e:
            logger.error("Command %s failed: %s", command, e)
            return {'ok': False, 'error': str(e)}

        return {'ok': False, 'error': f"Unknown command: {command!r}"}

    # ─── Callbacks ──────────────────────────────────────────────────

    def _publish(self, msg_type: MessageType, data: Dict[str, Any]) -> None:
        if self._publisher is None:
            return
        try:
            self._publisher.publish(msg_type, data)
        except Exception as e:
            logger.error("Failed to publish %s message: %s", msg_type.value, e)

    def photo_source(self, ref: PhotoRef) -> Optional[str]:
        """
        Local file uri of a cache-backed photo, so the display keeps working
        while the server is unreachable. None for photos not in the cache.
        """
        if not ref.is_cached:
            return None
        path = self.store.content_path(ref.photo_id)
        return path.resolve().as_uri() if path else None

    def _on_render(self, page: Page) -> None:
        self._publish(MessageType.PAGE, page.to_dict(self.photo_source))

    def _on_sequence(self, sequence: DisplaySequence) -> None:
        self._publish(MessageType.STATUS, {
            'status': sequence.status.value,
            'photo_count': len(sequence),
            'upload_url': self.client.upload_url,
        })

    def _on_settings_changed(self, settings: FrameSettings, changed: Iterable[str]) -> None:
        """Re-apply settings edited from the settings panel."""
        changed = list(changed)
        if ('slide_interval_seconds' in changed
                and settings.slide_interval_seconds != self.scheduler.interval_seconds):
            self.scheduler.set_interval(settings.slide_interval_seconds)

        self._publish(MessageType.STATUS, {'settings': settings.to_dict()})

    def get_status(self) -> Dict[str, Any]:
        """Get frame status for diagnostics."""
        return {
            'server_url': self.server_url,
            'upload_url': self.client.upload_url,
            'slideshow': {
                'state': self.scheduler.state.value,
                'page': self.scheduler.current_page,
                'total_pages': self.scheduler.total_pages,
                'interval_seconds': self.scheduler.interval_seconds,
            },
            'sync': self.sync_service.get_status(),
            'cache': {
                'photos': self.store.count(),
                'max_items': self.store.max_items,
            },
        }


def main():
    """Main entry point for the photo frame."""
    parser = argparse.ArgumentParser(description="Photo frame slideshow")
    parser.add_argument('--config', help="YAML config file path")
    parser.add_argument('--server-url', default=os.environ.get('PHOTOFRAME_SHELL_SERVER_URL'),
                        help="Server origin provided by the desktop shell")
    parser.add_argument('--settings-dir', help="Settings directory path")
    parser.add_argument('--cache-dir', help="Cache directory path")

    args = parser.parse_args()

    config = get_config(args.config)
    if args.cache_dir:
        config.set('cache.dir', args.cache_dir)

    logger.info("Photo frame starting...")

    app = FrameApp(
        config=config,
        shell_server_url=args.server_url,
        settings_dir=args.settings_dir
    )
    app.run()


if __name__ == "__main__":
    main()
