#!/usr/bin/env python3
"""
口语评测引擎 - 命令行入口

支持以下命令：
- score: 单条作答评测
- tone: 音频语调分析
- batch: 批量评测
"""
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from speakscore.acoustic.preprocess import load_audio
from speakscore.acoustic.tone import analyze_signal
from speakscore.config import config, load_config
from speakscore.models import TASK_SPECS, EvaluationRequest, EvaluationResult, ToneProfile
from speakscore.pipeline.aggregate import band_to_90
from speakscore.pipeline.evaluate import evaluate_response

# 创建 CLI 应用
app = typer.Typer(
    name="speakscore",
    help="口语能力评测引擎 CLI",
    add_completion=False,
)

# 控制台输出
console = Console()

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    handlers=[RichHandler(console=console, rich_tracebacks=True)],
)
logger = logging.getLogger("speakscore")


def _score_table(result: EvaluationResult) -> Table:
    spec = TASK_SPECS[result.task_type]
    table = Table(
        title=f"{spec.name} ({spec.short_name}) 评测结果",
        caption=f"准备 {spec.prep_time_sec}s / 录音 {spec.record_time_sec}s",
    )
    table.add_column("维度")
    table.add_column("得分", justify="right")
    table.add_column("10-90", justify="right")
    table.add_column("描述")

    for name in spec.traits:
        trait = result.scores.get(name)
        if trait is None:
            continue
        label = getattr(trait, "label", trait.name.capitalize())
        table.add_row(label, f"{trait.raw}/{trait.max}", str(band_to_90(trait.raw, trait.max)), trait.descriptor)
    return table


def _print_tone(profile: ToneProfile) -> None:
    if not profile.has_pitch_data:
        console.print(f"[yellow]{profile.analysis.overall.detail}[/yellow]")
        return

    table = Table(title="语调分析")
    table.add_column("指标")
    table.add_column("数值", justify="right")
    table.add_row("平均音高", f"{profile.avg_pitch} Hz")
    table.add_row("音高范围", f"{profile.min_pitch}-{profile.max_pitch} Hz")
    table.add_row("变异系数", f"{profile.pitch_variation}")
    table.add_row("语调走势", profile.intonation_pattern)
    table.add_row("语调分", str(profile.intonation_score))
    table.add_row("平均音量", f"{profile.avg_volume} dB")
    table.add_row("音量稳定性", str(profile.volume_consistency))
    console.print(table)

    for name in ("pitch", "intonation", "volume", "overall"):
        metric = getattr(profile.analysis, name)
        console.print(f"  [bold]{name}[/bold] ({metric.rating.value}): {metric.detail} {metric.suggestion}".rstrip())


def _tone_from_audio(audio: Path) -> ToneProfile:
    samples, sample_rate = load_audio(audio)
    return analyze_signal(samples, sample_rate, config.get("audio.frame_size", 2048))


@app.command()
def score(
    request_path: Path = typer.Option(..., "--request", help="评测请求 JSON 文件"),
    audio: Optional[Path] = typer.Option(None, "--audio", help="可选的录音文件，用于语调分析"),
    out: Optional[Path] = typer.Option(None, "--out", help="结果 JSON 输出路径"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="配置文件路径"),
) -> None:
    """
    单条作答评测

    读取题目与识别结果，输出各维度评分、综合分和反馈。
    """
    load_config(config_path)

    if not request_path.exists():
        console.print(f"[red]错误: 请求文件不存在: {request_path}[/red]")
        raise typer.Exit(1)

    try:
        with open(request_path, encoding="utf-8") as f:
            request = EvaluationRequest.from_dict(json.load(f))
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
        console.print(f"[red]错误: 无法解析评测请求: {e}[/red]")
        raise typer.Exit(1)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task_id = progress.add_task("评测中...", total=None)

            tone = None
            if audio is not None:
                progress.update(task_id, description="分析语调...")
                tone = _tone_from_audio(audio)

            result = evaluate_response(
                request,
                tone=tone,
                progress_callback=lambda desc: progress.update(task_id, description=desc),
            )
            progress.update(task_id, description="✅ 评测完成")
    except (FileNotFoundError, RuntimeError) as e:
        console.print(f"[red]❌ 评测失败: {e}[/red]")
        raise typer.Exit(1)

    console.print()
    console.print(_score_table(result))
    console.print(f"[bold]综合得分: {result.overall_score}/90 ({result.band.label})[/bold]")
    console.print(result.feedback.summary)
    for message in result.feedback.messages:
        console.print(f"  - {message}")
    if result.feedback.progression_tip:
        console.print(f"  [cyan]{result.feedback.progression_tip}[/cyan]")
    if result.accent and result.accent.detected_accent:
        console.print(
            f"  口音模式: {result.accent.accent_name} (置信度 {result.accent.confidence}%)"
        )
    if result.tone is not None:
        _print_tone(result.tone)

    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        with open(out, "w", encoding="utf-8") as f:
            json.dump(result.to_dict(), f, ensure_ascii=False, indent=2)
        console.print(f"JSON: {out}")


@app.command()
def tone(
    audio: Path = typer.Option(..., "--audio", help="录音文件（WAV/MP3）"),
    out: Optional[Path] = typer.Option(None, "--out", help="结果 JSON 输出路径"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="配置文件路径"),
) -> None:
    """
    语调分析

    对整段录音做基频与音量分析，输出语调画像。
    """
    load_config(config_path)

    try:
        profile = _tone_from_audio(audio)
    except (FileNotFoundError, RuntimeError) as e:
        console.print(f"[red]❌ 语调分析失败: {e}[/red]")
        raise typer.Exit(1)

    _print_tone(profile)

    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        with open(out, "w", encoding="utf-8") as f:
            json.dump(profile.to_dict(), f, ensure_ascii=False, indent=2)
        console.print(f"JSON: {out}")


@app.command()
def batch(
    manifest: Path = typer.Option(..., "--manifest", help="作答清单 CSV 文件"),
    tasks: Path = typer.Option(..., "--tasks", help="题库 YAML 文件"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", help="并发任务数"),
    out: Path = typer.Option(Path("./data/out"), "--out", help="输出目录"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="配置文件路径"),
) -> None:
    """
    批量评测

    根据 manifest CSV 与题库 YAML 批量评测，结果写入 results.json。
    """
    from rich.progress import BarColumn, MofNCompleteColumn, TimeElapsedColumn
    from speakscore.batch import build_requests, load_tasks, run_batch

    load_config(config_path)

    console.print(f"\n[bold blue]📦 开始批量评测[/bold blue]")
    console.print(f"  Manifest: {manifest}")
    console.print(f"  Tasks: {tasks}")
    console.print()

    try:
        task_configs = load_tasks(tasks)
        requests = build_requests(manifest, task_configs)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]❌ 批量评测失败: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"共 {len(requests)} 条作答待评测")
    if not requests:
        console.print("[yellow]没有需要处理的作答[/yellow]")
        return

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        progress_task = progress.add_task("处理中...", total=len(requests))

        def progress_callback(completed: int, total: int, request: EvaluationRequest):
            progress.update(
                progress_task,
                completed=completed,
                description=f"{request.student_id}/{request.task_id}",
            )

        results = run_batch(requests, max_workers=jobs, progress_callback=progress_callback)

    out.mkdir(parents=True, exist_ok=True)
    results_path = out / "results.json"
    with open(results_path, "w", encoding="utf-8") as f:
        json.dump([r.to_dict() for r in results], f, ensure_ascii=False, indent=2)

    table = Table(title="批量评测结果")
    table.add_column("学生")
    table.add_column("题目")
    table.add_column("综合分", justify="right")
    table.add_column("等级")
    for r in results:
        table.add_row(r.student_id, r.task_id, str(r.overall_score), r.band.label)

    console.print()
    console.print(table)
    console.print(f"结果: {results_path}")


if __name__ == "__main__":
    app()
