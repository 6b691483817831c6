"""Generation run orchestration."""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .errors import (
    BananaError,
    ExternalServiceError,
    NotFoundError,
    SessionWriteError,
    UserInputError,
)
from .models.registry import ModelRegistry
from .providers import DEFAULT_PROVIDER, default_registry
from .providers.base import GenerationRequest, InputImage, ProviderRegistry
from .providers.gemini import require_api_key
from .providers.google_utils import (
    GEMINI_RATIOS,
    SUPPORTED_EXTENSIONS_LABEL,
    is_valid_ratio,
    mime_type_for_path,
    normalize_size,
)
from .runs.events import EventWriter
from .runs.png_text import ensure_png
from .runs.receipts import GenerateOptions, ImageMetadata, build_metadata, embed_metadata
from .runs.session import Session, Usage, derive_path, open_for_resume, write_session

logger = logging.getLogger(__name__)

MAX_INPUT_FILE_SIZE = 7 * 1024 * 1024


@dataclass
class RunResult:
    output_path: Path
    session_path: Path
    image_bytes: int
    text: str
    metadata: ImageMetadata
    session: Session


def _same_path(a: str | Path, b: str | Path) -> bool:
    return Path(a).resolve() == Path(b).resolve()


def _combine_usage(previous: Usage | None, current: Usage | None) -> Usage | None:
    if previous is None:
        return current
    if current is None:
        return previous
    return previous + current


class BananaEngine:
    def __init__(
        self,
        registry: ModelRegistry,
        providers: ProviderRegistry | None = None,
        provider_name: str | None = None,
        events_path: Path | None = None,
        resume_filter: str | None = None,
    ) -> None:
        self.registry = registry
        self.providers = providers or default_registry()
        self.provider_name = provider_name or os.getenv("BANANA_PROVIDER") or DEFAULT_PROVIDER
        self.run_id = uuid.uuid4().hex[:12]
        self.events = EventWriter(events_path, self.run_id)
        self.resume_filter = resume_filter

    def prepare(
        self,
        *,
        prompt: str,
        output: str,
        model: str,
        ratio: str = "1:1",
        size: str | None = None,
        inputs: Sequence[str] = (),
        session: str | None = None,
        session_out: str | None = None,
        force: bool = False,
    ) -> GenerateOptions:
        """Validate a generation request before anything is sent or written."""
        if not prompt.strip() or not output:
            raise UserInputError("a prompt (-p) and an output path (-o) are required")

        canonical, definition = self.registry.resolve(model)

        if not is_valid_ratio(ratio):
            raise UserInputError(f"invalid aspect ratio {ratio!r} (valid: {', '.join(GEMINI_RATIOS)})")

        normalized_size = ""
        if size:
            normalized_size = normalize_size(size) or ""
            if not normalized_size:
                raise UserInputError(f"invalid size {size!r}: use 1k, 2k, or 4k")
            if not definition.supports_size(normalized_size):
                supported = ", ".join(sorted(definition.sizes))
                raise UserInputError(f"{canonical} does not support size {normalized_size} (supported: {supported})")

        if len(inputs) > definition.max_input_images:
            raise UserInputError(
                f"{canonical} supports up to {definition.max_input_images} input images, got {len(inputs)}"
            )

        options = GenerateOptions(
            prompt=prompt,
            output=output,
            model=canonical,
            model_id=definition.model_id,
            ratio=ratio,
            size=normalized_size,
            inputs=list(inputs),
            session=session or "",
            session_out=session_out or "",
            force=force,
        )
        self._validate_paths(options)
        self._validate_events_path()
        if self.provider_name == DEFAULT_PROVIDER:
            require_api_key()
        return options

    def _validate_events_path(self) -> None:
        path = self.events.path
        if path is None:
            return
        if path.is_dir():
            raise UserInputError(f"events file {str(path)!r} is a directory")
        ancestor = path.parent
        while not ancestor.exists() and ancestor != ancestor.parent:
            ancestor = ancestor.parent
        if not ancestor.is_dir():
            raise NotFoundError(f"events directory {str(path.parent)!r} cannot be created")

    def _validate_paths(self, options: GenerateOptions) -> None:
        output = Path(options.output)
        if output.suffix.lower() != ".png":
            raise UserInputError(f"output file {options.output!r} must be a .png file (metadata is embedded as PNG text)")
        out_dir = output.parent
        if not out_dir.is_dir():
            raise NotFoundError(f"output directory {str(out_dir)!r} does not exist")

        session_target = self.session_target(options)
        if options.session:
            if _same_path(options.output, options.session):
                raise UserInputError("-o and -s must not point to the same file")
            if _same_path(session_target, options.session):
                raise UserInputError(
                    f"new session {str(session_target)!r} would overwrite the source session; "
                    "choose a different -o or pass -S"
                )
            if not Path(options.session).is_file():
                raise NotFoundError(f"session file {options.session!r} does not exist")
        if options.session_out and _same_path(options.session_out, options.output):
            raise UserInputError("-o and -S must not point to the same file")
        if options.session_out and not Path(options.session_out).parent.is_dir():
            raise NotFoundError(f"session output directory {str(Path(options.session_out).parent)!r} does not exist")

        if output.exists() and not options.force:
            raise UserInputError(f"output file {options.output!r} already exists (use -f to overwrite)")
        if session_target.exists() and not options.force:
            raise UserInputError(f"session file {str(session_target)!r} already exists (use -f to overwrite)")

        for item in options.inputs:
            path = Path(item)
            if not path.exists():
                raise NotFoundError(f"input file {item!r} does not exist")
            if not path.is_file():
                raise UserInputError(f"input file {item!r} is not a regular file")
            if mime_type_for_path(path) is None:
                raise UserInputError(
                    f"input file {item!r} has unsupported extension (supported: {SUPPORTED_EXTENSIONS_LABEL})"
                )
            size_bytes = path.stat().st_size
            if size_bytes > MAX_INPUT_FILE_SIZE:
                raise UserInputError(
                    f"input file {item!r} is {size_bytes / (1024 * 1024):.1f} MB, exceeds 7 MB inline limit"
                )

    @staticmethod
    def session_target(options: GenerateOptions) -> Path:
        return Path(options.session_out) if options.session_out else derive_path(options.output)

    def _read_inputs(self, options: GenerateOptions) -> list[InputImage]:
        images = []
        for item in options.inputs:
            path = Path(item)
            try:
                data = path.read_bytes()
            except OSError as exc:
                raise NotFoundError(f"failed to read input image {item!r}: {exc}") from exc
            images.append(InputImage(name=path.name, data=data, mime_type=mime_type_for_path(path)))
        return images

    def run(self, options: GenerateOptions) -> RunResult:
        provider = self.providers.get(self.provider_name)
        if provider is None:
            raise UserInputError(
                f"unknown provider {self.provider_name!r} (valid: {', '.join(self.providers.list())})"
            )

        source_usage = None
        history = []
        if options.session:
            source, history = open_for_resume(options.session, options.model, self.registry, self.resume_filter)
            source_usage = source.usage

        request = GenerationRequest(
            model_id=options.model_id,
            prompt=options.prompt,
            ratio=options.ratio,
            size=options.size or None,
            images=self._read_inputs(options),
            history=history,
        )
        self.events.emit(
            "generation_started",
            provider=provider.name,
            model=options.model,
            model_id=options.model_id,
            inputs=len(request.images),
            history_turns=len(history),
        )
        try:
            result = provider.submit(request)
        except ExternalServiceError as exc:
            self.events.emit("generation_failed", model=options.model, error=str(exc))
            raise

        metadata = build_metadata(options, result.history)
        image = embed_metadata(ensure_png(result.image), metadata)
        output_path = Path(options.output)
        try:
            with open(output_path, "wb" if options.force else "xb") as handle:
                handle.write(image)
        except OSError as exc:
            raise BananaError(f"failed to write output: {exc}") from exc
        self.events.emit("artifact_written", path=str(output_path), bytes=len(image))

        session = Session(
            model=options.model,
            size=options.size or None,
            history=tuple(result.history),
            usage=_combine_usage(source_usage, result.usage),
        )
        session_path = self.session_target(options)
        try:
            write_session(session_path, session, overwrite=options.force)
        except OSError as exc:
            self.events.emit("session_write_failed", path=str(session_path), error=str(exc))
            raise SessionWriteError(str(output_path), str(session_path), exc) from exc
        self.events.emit("session_written", path=str(session_path), turns=session.turns)
        logger.debug("session %s has %d turns", session_path, session.turns)

        return RunResult(
            output_path=output_path,
            session_path=session_path,
            image_bytes=len(image),
            text=result.text,
            metadata=metadata,
            session=session,
        )
