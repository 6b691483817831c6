"""Cost estimation for saved sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from ..errors import BananaError
from ..models.registry import BASE_SIZE, PRICES_COLLECTED, ModelRegistry
from ..runs.session import ROLE_MODEL, Session, Usage, list_session_files, read_session


@dataclass(frozen=True)
class CostBreakdown:
    file: str
    model: str
    size: str
    size_from_data: bool
    turns: int
    output_images: int
    usage: Usage | None = None
    priced: bool = False
    input_cost: float = 0.0
    output_cost: float = 0.0
    image_cost: float = 0.0

    @property
    def total(self) -> float:
        return self.input_cost + self.output_cost + self.image_cost


@dataclass
class CostSummary:
    results: list[CostBreakdown] = field(default_factory=list)
    skipped: list[tuple[Path, BananaError]] = field(default_factory=list)

    @property
    def total_cost(self) -> float:
        return sum(cb.total for cb in self.results)

    @property
    def total_images(self) -> int:
        return sum(cb.output_images for cb in self.results)

    @property
    def unpriced(self) -> int:
        return sum(1 for cb in self.results if not cb.priced)


def count_output_images(session: Session) -> int:
    count = 0
    for turn in session.history:
        if turn.role != ROLE_MODEL:
            continue
        for part in turn.parts:
            if part.inline_data is not None and len(part.inline_data.data) > 0:
                count += 1
    return count


def breakdown(session: Session, file_name: str, registry: ModelRegistry) -> CostBreakdown:
    model = registry.canonical(session.model)
    size = session.size or BASE_SIZE
    base = dict(
        file=file_name,
        model=model,
        size=size,
        size_from_data=bool(session.size),
        turns=session.turns,
        output_images=count_output_images(session),
        usage=session.usage,
    )
    definition = registry.get(model)
    if definition is None:
        return CostBreakdown(**base)

    input_cost = output_cost = 0.0
    if session.usage is not None:
        input_cost = session.usage.prompt_tokens * definition.input_per_mtok / 1_000_000
        output_cost = session.usage.candidate_tokens * definition.output_per_mtok / 1_000_000
    return CostBreakdown(
        **base,
        priced=True,
        input_cost=input_cost,
        output_cost=output_cost,
        image_cost=base["output_images"] * definition.image_price(size),
    )


def analyze_session(path: str | Path, registry: ModelRegistry) -> CostBreakdown:
    session, _ = read_session(path)
    return breakdown(session, Path(path).name, registry)


def analyze_directory(directory: str | Path, registry: ModelRegistry) -> CostSummary:
    summary = CostSummary()
    for path in list_session_files(directory):
        try:
            summary.results.append(analyze_session(path, registry))
        except BananaError as exc:
            summary.skipped.append((path, exc))
    return summary


def format_cost(usd: float) -> str:
    if usd < 0.01:
        return f"{usd:.4f}"
    return f"{usd:.2f}"


def format_token_count(count: int) -> str:
    return f"{count:,}"


def render_breakdown(cb: CostBreakdown) -> list[str]:
    lines = [f"model:   {cb.model}", f"turns:   {cb.turns}"]
    if cb.usage is not None and cb.priced:
        lines.append(f"input:   {format_token_count(cb.usage.prompt_tokens)} tokens (${format_cost(cb.input_cost)})")
        lines.append(f"output:  {format_token_count(cb.usage.candidate_tokens)} tokens (${format_cost(cb.output_cost)})")
    elif cb.usage is not None:
        lines.append(f"input:   {format_token_count(cb.usage.prompt_tokens)} tokens")
        lines.append(f"output:  {format_token_count(cb.usage.candidate_tokens)} tokens")
    else:
        lines.append("tokens:  no data")

    if cb.priced:
        size_note = cb.size if cb.size_from_data else f"{cb.size} (assumed)"
        lines.append(f"images:  {cb.output_images} @ {size_note} (${format_cost(cb.image_cost)})")
        lines.append(f"total:   ~${format_cost(cb.total)}")
    else:
        lines.append(f"images:  {cb.output_images}")
        lines.append("total:   unknown (unrecognized model)")
    lines.append("")
    lines.append(f"prices collected {PRICES_COLLECTED}")
    return lines


def render_summary(summary: CostSummary) -> list[str]:
    lines = []
    for cb in summary.results:
        cost = f"~${format_cost(cb.total)}" if cb.priced else "?"
        size = cb.size if cb.size_from_data else f"{cb.size}?"
        lines.append(
            f"  {cb.file:<30} {cb.model:<10} {size:<3} turns={cb.turns:<3d} images={cb.output_images:<3d} {cost}"
        )
    total = (
        f"  total: {len(summary.results)} sessions, {summary.total_images} images, "
        f"~${format_cost(summary.total_cost)}"
    )
    if summary.unpriced:
        total += f" ({summary.unpriced} unpriced)"
    lines.append("")
    lines.append(total)
    lines.append("")
    lines.append(f"prices collected {PRICES_COLLECTED}")
    return lines
