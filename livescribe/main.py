"""Main application entry point for LiveScribe."""

import signal
import sys
import logging
from pathlib import Path
from typing import Optional

import click
from dotenv import find_dotenv, load_dotenv

from livescribe import __version__
from livescribe.audio.audio_pub import AUDIO_TOPIC, AudioPublisher
from livescribe.audio.capture import AudioCapture
from livescribe.audio.mic_test import MicrophoneSmokeTest
from livescribe.errors import CaptureError, ConfigurationError, LiveScribeError
from livescribe.services.session_controller import SessionController
from livescribe.transcription.base import AbstractRecognitionChannel
from livescribe.transcription.deepgram_channel import DeepgramChannel
from livescribe.transcription.google_channel import GoogleStreamingChannel
from livescribe.transcription.latency import LatencyTracker
from livescribe.ui.presenter import TranscriptPresenter

from .config import LiveScribeConfig

logger = logging.getLogger(__name__)


class LiveScribeApp:
    """Wires configuration, capture, recognition channel and presenter into one session."""

    def __init__(self, config_path: Optional[str] = None, log_level: Optional[str] = None):
        load_dotenv(find_dotenv(usecwd=True))
        # Load configuration
        self.config = LiveScribeConfig(config_path)
        # Set up logging (override config with command line if specified)
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self.controller: Optional[SessionController] = None

    def init(self, preset_name: Optional[str] = None) -> None:
        """Build the session from configuration.

        Raises:
            ConfigurationError: If the preset, session fields or backend are invalid
        """
        logger.info("Initializing session...")
        preset = self.config.get_preset(preset_name)
        session_config = self.config.get_session_config(preset.name)

        chunk_size = self.config.get('audio.chunk_size', 1024)
        device_index = self.config.get('audio.device_index')
        logger.info(f"Audio settings: {session_config.sample_rate}Hz, {chunk_size} samples/chunk, "
                    f"{session_config.channels} channels, encoding={session_config.encoding}")

        self.audio_publisher = AudioPublisher(AUDIO_TOPIC)
        self.audio_capture = AudioCapture(
            callback=self.audio_publisher.publish_audio_event,
            chunk_size=chunk_size,
            device_index=device_index,
        )
        self.presenter = TranscriptPresenter(final_label=preset.final_label)
        self.controller = SessionController(
            config=session_config,
            channel=self._create_channel(),
            audio_source=self.audio_capture,
            presenter=self.presenter,
            tracker=LatencyTracker(),
            audio_topic=AUDIO_TOPIC,
            start_banner=preset.banner,
        )

    def _create_channel(self) -> AbstractRecognitionChannel:
        backend = self.config.get_backend()
        logger.info(f"Recognition backend: {backend}")
        if backend == 'google':
            return GoogleStreamingChannel(
                credentials_path=self.config.get_google_credentials_path(),
                language=self.config.get('google_cloud.language', 'en-US'),
                model=self.config.get('google_cloud.model', 'latest_long'),
            )
        return DeepgramChannel(
            api_key=self.config.get_deepgram_api_key(),
            url=self.config.get('deepgram.url'),
            connect_timeout=self.config.get('deepgram.connect_timeout_seconds', 10.0),
            close_timeout=self.config.get('deepgram.close_timeout_seconds', 5.0),
        )

    def run(self) -> int:
        """Run the session until it closes. Returns the process exit code."""
        controller = self.controller

        def handle_signal(signum, frame):
            logger.info(f"Received signal {signum}, stopping session")
            controller.request_stop(signal.Signals(signum).name)

        previous = {sig: signal.signal(sig, handle_signal) for sig in (signal.SIGINT, signal.SIGTERM)}
        try:
            controller.run()
        finally:
            self.cleanup()
            for sig, handler in previous.items():
                signal.signal(sig, handler)

        return 1 if controller.startup_error else 0

    def cleanup(self) -> None:
        if self.controller:
            self.controller.stop()


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    # Get log file path from config
    log_file_path = config.get('logging.file_path', 'data/logs/livescribe.log')
    console_output = config.get('logging.console_output', False)

    # Create logs directory if it doesn't exist
    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    # Set up handlers
    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("LiveScribe application starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


LOG_LEVELS = click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False)


@click.group(invoke_without_command=True)
@click.option("--config", "config_path", type=click.Path(dir_okay=False),
              help="Path to configuration YAML file (default: ./livescribe.yaml if present)")
@click.option("--log-level", type=LOG_LEVELS, default=None,
              help="Set logging level (default: from config, else INFO)")
@click.version_option(__version__, prog_name="LiveScribe")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], log_level: Optional[str]) -> None:
    """LiveScribe - real-time microphone transcription.

    \b
    Examples:
      livescribe                          Listen with the configured preset
      livescribe listen --preset ultra-low
      livescribe mic-test --duration 5    Record 5 seconds to mic-test.raw
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["log_level"] = log_level
    if ctx.invoked_subcommand is None:
        ctx.invoke(listen)


def _build_app(ctx: click.Context) -> LiveScribeApp:
    try:
        return LiveScribeApp(ctx.obj.get("config_path"), ctx.obj.get("log_level"))
    except ConfigurationError as e:
        click.secho(f"Configuration error: {e}", fg="red", err=True)
        ctx.exit(1)


@cli.command()
@click.option("--preset", default=None, help="Session preset: standard or ultra-low")
@click.pass_context
def listen(ctx: click.Context, preset: Optional[str]) -> None:
    """Stream the microphone to the recognition service and print transcripts."""
    app = _build_app(ctx)
    try:
        app.init(preset)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        click.secho(f"Configuration error: {e}", fg="red", err=True)
        ctx.exit(1)

    exit_code = app.run()
    ctx.exit(exit_code)


@cli.command("mic-test")
@click.option("--duration", type=click.FloatRange(min=0.1), default=5.0, show_default=True,
              help="Seconds to record")
@click.option("--output", type=click.Path(dir_okay=False), default="mic-test.raw", show_default=True,
              help="Raw audio output file")
@click.option("--preset", default=None, help="Preset whose capture format is used")
@click.pass_context
def mic_test(ctx: click.Context, duration: float, output: str, preset: Optional[str]) -> None:
    """Record a few seconds of raw microphone audio to check the input device."""
    app = _build_app(ctx)
    try:
        session_config = app.config.get_session_config(preset)
        smoke_test = MicrophoneSmokeTest(
            output_path=output,
            chunk_size=app.config.get('audio.chunk_size', 1024),
            device_index=app.config.get('audio.device_index'),
        )
        result = smoke_test.run(session_config, duration)
    except (ConfigurationError, CaptureError) as e:
        logger.error(f"Microphone test failed: {e}")
        click.secho(f"Microphone test failed: {e}", fg="red", err=True)
        ctx.exit(1)

    ctx.exit(1 if result.chunks == 0 else 0)


def main() -> None:
    """Main entry point for LiveScribe application."""
    try:
        cli(obj={})
    except LiveScribeError as e:
        logging.error(f"Application error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
