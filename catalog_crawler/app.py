"""Typer CLI entrypoint for Catalog-Crawler."""

from __future__ import annotations

import asyncio
import json
import signal
from contextlib import suppress
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Sequence

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, SettingsSnapshot, settings_to_raw
from .engine import CatalogItem, PageFetchError
from .infra import CacheStore
from .logging_conf import CRAWLER_LOG, ERROR_LOG, configure_logging, tail_log
from .orchestrator import CatalogPipeline

app = typer.Typer(
    help="Catalog-Crawler 命令行工具",
    no_args_is_help=True,
    rich_markup_mode=None,
)
cache_app = typer.Typer(
    name="cache",
    help="本地缓存管理命令",
    no_args_is_help=True,
    rich_markup_mode=None,
)
config_app = typer.Typer(
    name="config",
    help="配置查看命令",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="日志查看命令",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    snapshot: SettingsSnapshot

    def cache_store(self) -> CacheStore:
        return CacheStore(
            self.repository.locator.cache_path(),
            timedelta(minutes=self.snapshot.settings.cache_ttl_minutes),
        )


def build_state(verbose: bool) -> AppState:
    repository = ConfigRepository()
    configure_logging(verbose, log_dir=repository.locator.logs_dir)
    return AppState(repository=repository, snapshot=repository.load_settings())


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _format_timestamp(item: CatalogItem) -> str:
    if item.last_updated is None:
        return "-"
    return item.last_updated.strftime("%Y-%m-%d %H:%M")


def _render_items_table(items: Sequence[CatalogItem], total: int) -> Table:
    title = f"目录条目 · 共 {total} 个"
    if len(items) < total:
        title += f"（显示前 {len(items)} 个）"
    table = Table(title=title, box=box.SIMPLE_HEAD, show_lines=False)
    table.add_column("名称", style="cyan", overflow="fold")
    table.add_column("作者", style="magenta")
    table.add_column("分类", style="green")
    table.add_column("性别")
    table.add_column("版本", style="yellow")
    table.add_column("更新时间")
    table.add_column("下载", overflow="fold")
    for item in items:
        table.add_row(
            item.name,
            item.publisher or "-",
            item.category or "-",
            item.gender.value,
            item.version or "-",
            _format_timestamp(item),
            "✓" if item.download_url else "✗",
        )
    return table


def _item_payload(item: CatalogItem) -> dict:
    payload = item.to_dict()
    if item.last_updated is not None:
        payload["last_updated"] = item.last_updated.isoformat()
    return payload


async def _collect_items(state: AppState, refresh: bool) -> list[CatalogItem]:
    async with CatalogPipeline(
        state.snapshot.settings,
        state.snapshot.hash,
        state.repository.locator.cache_path(),
    ) as pipeline:
        if refresh:
            pipeline.store.invalidate()
        loop = asyncio.get_running_loop()
        # Ctrl+C 时协作取消，已抓取的内容不写入缓存
        with suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGINT, pipeline.cancel)
        try:
            return await pipeline.get_items()
        finally:
            with suppress(NotImplementedError):
                loop.remove_signal_handler(signal.SIGINT)


app.add_typer(cache_app, name="cache", help="查看或清空本地缓存")
app.add_typer(config_app, name="config", help="查看当前生效的配置")
app.add_typer(log_app, name="log", help="查看日志文件")


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="开启调试日志")
) -> None:
    ctx.obj = build_state(verbose)


@app.command("fetch", help="获取目录条目（缓存有效时直接返回缓存）。")
def fetch(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="最多显示的条目数量。"),
    as_json: bool = typer.Option(False, "--json", help="以 JSON 输出全部字段。"),
    refresh: bool = typer.Option(False, "--refresh", help="忽略现有缓存并重新抓取。"),
) -> None:
    state = _get_state(ctx)
    try:
        items = asyncio.run(_collect_items(state, refresh))
    except PageFetchError as exc:
        console.print(f"抓取失败：{exc}", style="red")
        raise typer.Exit(code=1) from exc

    if not items:
        console.print("没有获取到任何条目（可能已取消）。", style="yellow")
        raise typer.Exit(code=0)

    shown = items[:limit] if limit else items
    if as_json:
        typer.echo(json.dumps([_item_payload(item) for item in shown], ensure_ascii=False, indent=2))
        return
    console.print(_render_items_table(shown, len(items)))


@cache_app.command("show", help="查看缓存文件状态。")
def cache_show(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    store = state.cache_store()
    record = store.load()
    if record is None:
        console.print(f"缓存为空或已过期：{store.path}", style="dim")
        return
    table = Table(title="缓存状态", box=box.SIMPLE_HEAD)
    table.add_column("字段", style="cyan", no_wrap=True)
    table.add_column("值", style="green", overflow="fold")
    table.add_row("路径", str(store.path))
    table.add_row("条目数", str(len(record.items)))
    table.add_row("过期时间", record.expires_at.isoformat())
    console.print(table)


@cache_app.command("clear", help="删除缓存文件。")
def cache_clear(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    store = state.cache_store()
    store.invalidate()
    console.print(f"缓存已清空：{store.path}", style="green")


@config_app.command("show", help="显示当前生效的配置。")
def config_show(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    raw = settings_to_raw(state.snapshot.settings)
    if raw.get("session_token"):
        raw["session_token"] = "***"
    table = Table(
        title=f"配置 · {state.repository.locator.settings_path()}",
        box=box.SIMPLE_HEAD,
    )
    table.add_column("键", style="cyan", no_wrap=True)
    table.add_column("值", style="green", overflow="fold")
    for key in sorted(raw):
        table.add_row(key, str(raw[key]))
    table.add_row("settings_hash", state.snapshot.hash)
    console.print(table)


@log_app.command("show", help="查看全局日志的最近内容。")
def log_show(
    ctx: typer.Context,
    tail: int = typer.Option(100, "--tail", min=1, help="显示最近 N 行内容。"),
    errors: bool = typer.Option(False, "--errors", help="查看错误日志。"),
) -> None:
    state = _get_state(ctx)
    name = ERROR_LOG if errors else CRAWLER_LOG
    lines = tail_log(state.repository.locator.logs_dir / name, tail)
    if not lines:
        console.print("暂无日志信息，请稍后再试。", style="dim")
        return
    console.print(f"{name} · 最近 {len(lines)} 行", style="cyan")
    console.print("".join(lines))


if __name__ == "__main__":  # pragma: no cover
    app()
