"""Per-configuration codec lifecycle — create once, mutate many times, destroy once."""

from __future__ import annotations

import logging
from enum import Enum

from opus_fuzz.codecs.base import (
    APPLICATION_RESTRICTED_LOWDELAY,
    OK,
    CodecBackend,
    Decoder,
    Encoder,
    EncoderOption,
    Mode,
    Profile,
)
from opus_fuzz.report import HarnessFailure, Reporter
from opus_fuzz.sampler import EncoderSetting, FuzzConfiguration

logger = logging.getLogger(__name__)


class SessionState(Enum):
    UNINITIALIZED = "uninitialized"
    MODE_CREATED = "mode_created"
    DECODER_READY = "decoder_ready"
    ENCODER_READY = "encoder_ready"
    TEARDOWN = "teardown"


def _profile(custom: bool) -> Profile:
    return Profile.CUSTOM if custom else Profile.STANDARD


class CodecSession:
    """Owns the mode, decoder and encoder for one configuration.

    Use as a context manager: handles are created on entry and released on
    exit whatever happens in between. Each handle is destroyed by its own
    class, so a custom handle never meets a standard destructor.
    """

    def __init__(
        self,
        backend: CodecBackend,
        configuration: FuzzConfiguration,
        reporter: Reporter,
        application: int = APPLICATION_RESTRICTED_LOWDELAY,
    ):
        self.backend = backend
        self.configuration = configuration
        self.reporter = reporter
        self.application = application
        self.state = SessionState.UNINITIALIZED
        self.mode: Mode | None = None
        self.decoder: Decoder | None = None
        self.encoder: Encoder | None = None

    def __enter__(self) -> CodecSession:
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def open(self) -> None:
        if self.state is not SessionState.UNINITIALIZED:
            raise RuntimeError(f"Session already open (state: {self.state.value})")
        try:
            self._create_mode()
            self._create_decoder()
            self._create_encoder()
        except HarnessFailure:
            self.close()
            raise
        logger.debug("Codec session ready: %s", self.configuration.describe())

    def _creation_failed(self, what: str, err: int) -> None:
        self.reporter.fail(
            f"create_{what}",
            f"{what} creation failed: {self.backend.strerror(err)} ({err})",
            configuration=self.configuration,
        )

    def _create_mode(self) -> None:
        c = self.configuration
        if not c.uses_custom:
            return
        mode, err = self.backend.create_mode(c.sample_rate, c.frame_size)
        if mode is not None:
            self.mode = mode
        if err != OK or mode is None:
            self._creation_failed("mode", err)
        self.state = SessionState.MODE_CREATED

    def _create_decoder(self) -> None:
        c = self.configuration
        decoder, err = self.backend.create_decoder(
            _profile(c.custom_decode), c.sample_rate, c.channels, mode=self.mode,
        )
        if decoder is not None:
            self.decoder = decoder
        if err != OK or decoder is None:
            self._creation_failed("decoder", err)
        self.state = SessionState.DECODER_READY

    def _create_encoder(self) -> None:
        c = self.configuration
        encoder, err = self.backend.create_encoder(
            _profile(c.custom_encode), c.sample_rate, c.channels,
            mode=self.mode, application=self.application,
        )
        if encoder is not None:
            self.encoder = encoder
        if err != OK or encoder is None:
            self._creation_failed("encoder", err)
        self.state = SessionState.ENCODER_READY

    def apply(self, setting: EncoderSetting) -> None:
        """Push one setting into the live encoder. Any rejected request is fatal."""
        if self.state is not SessionState.ENCODER_READY:
            raise RuntimeError(f"Cannot configure encoder in state {self.state.value}")
        requests = (
            (EncoderOption.BITRATE, setting.bitrate),
            (EncoderOption.VBR, setting.vbr),
            (EncoderOption.VBR_CONSTRAINT, setting.vbr_constraint),
            (EncoderOption.COMPLEXITY, setting.complexity),
            (EncoderOption.PACKET_LOSS_PERC, setting.packet_loss_perc),
            (EncoderOption.LSB_DEPTH, setting.lsb_depth),
        )
        for option, value in requests:
            ret = self.encoder.configure(option, value)
            if ret != OK:
                self.reporter.fail(
                    "configure",
                    f"{self.encoder.profile.value} encoder rejected {option.name}={value}: "
                    f"{self.backend.strerror(ret)} ({ret})",
                    configuration=self.configuration,
                    setting=setting,
                )

    def close(self) -> None:
        """Destroy whatever was created: encoder, decoder, then the mode they share."""
        if self.mode is None and self.decoder is None and self.encoder is None:
            self.state = SessionState.UNINITIALIZED
            return
        self.state = SessionState.TEARDOWN
        encoder, self.encoder = self.encoder, None
        decoder, self.decoder = self.decoder, None
        mode, self.mode = self.mode, None
        try:
            if encoder is not None:
                encoder.destroy()
        finally:
            try:
                if decoder is not None:
                    decoder.destroy()
            finally:
                if mode is not None:
                    mode.destroy()
                self.state = SessionState.UNINITIALIZED
        logger.debug("Codec session released: %s", self.configuration.describe())
