"""Shared fakes and fixtures for the mp3bot test suite.

WHY: Most tests exercise the pipeline or the service without real network
access or a real ffmpeg. Centralizing the fakes keeps every test module
using the same, predictable collaborators.

HOW: Fake transfer/transcoder classes implement the same async interface
as TransferClient and FFmpegTranscoder and write small files into the
pytest tmp_path working directory. FakeNotifier and FakeGate record calls
for the service and bot tests.

RULES:
- No test touches the network or requires ffmpeg on PATH
- Every working directory is a fresh tmp_path
- Fakes record what they were called with so tests can assert ordering
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

from mp3bot.core.models import ConversionOptions, JobRequest
from mp3bot.core.pipeline import ConversionPipeline
from mp3bot.service import ChatRef, MembershipStatus

MIB = 1024 * 1024
FAKE_VIDEO = b"\x00\x00\x00\x18ftypmp42" + b"v" * 1024
FAKE_MP3 = b"ID3\x03\x00\x00\x00" + b"a" * 512


class FakeTransfer:
    """Stands in for TransferClient; writes ``payload`` to the destination."""

    def __init__(
        self,
        payload: bytes = FAKE_VIDEO,
        error: Optional[BaseException] = None,
        delay_s: float = 0.0,
        partial: bool = False,
    ) -> None:
        self.payload = payload
        self.error = error
        self.delay_s = delay_s
        self.partial = partial
        self.calls: List[Tuple[str, Path, Optional[int]]] = []

    async def __aenter__(self) -> FakeTransfer:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        return None

    async def fetch(self, file_reference: str, destination: Path, max_bytes: Optional[int] = None) -> Path:
        self.calls.append((file_reference, destination, max_bytes))
        destination.parent.mkdir(parents=True, exist_ok=True)
        if self.partial:
            destination.write_bytes(self.payload[: len(self.payload) // 2])
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        destination.write_bytes(self.payload)
        return destination


class FakeTranscoder:
    """Stands in for FFmpegTranscoder; writes a fake MP3 or fails."""

    def __init__(
        self,
        output: bytes = FAKE_MP3,
        error: Optional[BaseException] = None,
        delay_s: float = 0.0,
    ) -> None:
        self.output = output
        self.error = error
        self.delay_s = delay_s
        self.calls: List[Tuple[Path, Path, ConversionOptions]] = []

    async def convert(self, source: Path, target: Path, options: ConversionOptions) -> None:
        self.calls.append((source, target, options))
        assert source.exists(), "conversion started before the download finished"
        # Leave a partial target behind, like a crashed ffmpeg would
        target.write_bytes(self.output[:10])
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        target.write_bytes(self.output)


class FakeNotifier:
    """Records every Notification Sink call."""

    def __init__(self, fail_audio: bool = False) -> None:
        self.calls: List[Tuple[str, Any]] = []
        self.fail_audio = fail_audio
        self.audio_snapshots: List[Dict[str, Any]] = []
        self._counter = 0

    def send_text(self, chat: ChatRef, text: str) -> Optional[str]:
        self._counter += 1
        ts = "1000.{:03d}".format(self._counter)
        self.calls.append(("send_text", text))
        return ts

    def edit_text(self, chat: ChatRef, message_ref: str, text: str) -> None:
        self.calls.append(("edit_text", text))

    def send_audio(self, chat: ChatRef, file_path: Path, caption: str) -> None:
        path = Path(file_path)
        self.audio_snapshots.append(
            {
                "path": path,
                "exists": path.exists(),
                "size": path.stat().st_size if path.exists() else 0,
                "caption": caption,
            }
        )
        self.calls.append(("send_audio", path))
        if self.fail_audio:
            raise RuntimeError("upload failed")

    def send_join_prompt(self, chat: ChatRef) -> None:
        self.calls.append(("send_join_prompt", chat.channel))

    def texts(self) -> List[str]:
        return [arg for name, arg in self.calls if name in ("send_text", "edit_text")]


class FakeGate:
    def __init__(self, status: MembershipStatus = MembershipStatus.MEMBER, error: Optional[Exception] = None) -> None:
        self.status = status
        self.error = error
        self.calls: List[str] = []

    def check(self, user_id: str) -> MembershipStatus:
        self.calls.append(user_id)
        if self.error is not None:
            raise self.error
        return self.status


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    """Working directory for job files (not created up front)."""
    return tmp_path / "work"


@pytest.fixture
def make_pipeline(work_dir: Path):
    """Factory building a ConversionPipeline around the given fakes."""

    def _make(
        transfer: Optional[FakeTransfer] = None,
        transcoder: Optional[FakeTranscoder] = None,
        max_file_size_bytes: int = 50 * MIB,
        **kwargs: Any,
    ) -> ConversionPipeline:
        transfer = transfer or FakeTransfer()
        return ConversionPipeline(
            transfer_factory=lambda: transfer,
            transcoder=transcoder or FakeTranscoder(),
            work_dir=work_dir,
            max_file_size_bytes=max_file_size_bytes,
            **kwargs,
        )

    return _make


@pytest.fixture
def video_request() -> JobRequest:
    return JobRequest(
        file_reference="F0VIDEO1",
        requester_id="U123",
        declared_size=10 * MIB,
        filename="clip.mp4",
    )


def files_in(directory: Path) -> List[Path]:
    """All files below ``directory`` (empty if it does not exist)."""
    if not directory.exists():
        return []
    return [p for p in directory.rglob("*") if p.is_file()]


@pytest.fixture
def list_files():
    return files_in
