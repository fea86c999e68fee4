from datetime import datetime
from typing import Optional, Sequence

from .checker import TIME_FORMAT
from .schema import CheckStatus, FullCheckResult, Report, ReportSummary

STATUS_GLYPHS = {
    CheckStatus.SUCCESS: "OK",
    CheckStatus.FAILED: "FAIL",
    CheckStatus.WARNING: "WARN",
}


def overall_status(result: FullCheckResult) -> CheckStatus:
    """failed beats warning beats success; pending/running entries count as success."""
    worst = max((item.status for item in result.results), key=lambda s: s.severity, default=CheckStatus.SUCCESS)
    if worst.severity < CheckStatus.SUCCESS.severity:
        return CheckStatus.SUCCESS
    return worst


def summarize(results: Sequence[FullCheckResult]) -> ReportSummary:
    counts = {CheckStatus.SUCCESS: 0, CheckStatus.FAILED: 0, CheckStatus.WARNING: 0}
    for result in results:
        counts[overall_status(result)] += 1
    return ReportSummary(
        total=len(results),
        success=counts[CheckStatus.SUCCESS],
        failed=counts[CheckStatus.FAILED],
        warning=counts[CheckStatus.WARNING],
    )


def build_report(results: Sequence[FullCheckResult], now: Optional[datetime] = None) -> Report:
    return Report(
        generated_at=(now or datetime.now()).strftime(TIME_FORMAT),
        results=list(results),
        summary=summarize(results),
    )


def generate_report(results: Sequence[FullCheckResult], now: Optional[datetime] = None) -> str:
    """Indented JSON report using the stable camelCase field names."""
    return build_report(results, now).model_dump_json(by_alias=True, indent=2)


def generate_text_summary(results: Sequence[FullCheckResult], now: Optional[datetime] = None) -> str:
    lines = [
        "=== AI API Check Report ===",
        f"Time: {(now or datetime.now()).strftime(TIME_FORMAT)}",
        "",
    ]
    for r in results:
        lines.append(f"[{r.provider_name}] {r.model} ({r.base_url})")
        for item in r.results:
            glyph = STATUS_GLYPHS.get(item.status, "?")
            lines.append(f"  {item.item.value:<15} [{glyph}] {item.message} ({item.latency}ms)")
        lines.append(f"  Total: {r.total_latency}ms")
        lines.append("")
    return "\n".join(lines) + "\n"
