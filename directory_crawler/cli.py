# === FILE: directory_crawler/cli.py ===
#!/usr/bin/env python3
"""
Точка входа для запуска краулера DirectoryCrawler через командную строку.

Команды:
  crawl URL         Обойти одну страницу
  batch [URL]...    Обойти список независимых URL (аргументы и/или --file)
  deep URL          Обойти сайт в ширину до --max-depth
  refresh KEY       Повторно обойти сайт из хранилища и сохранить результат
  config            Показать текущую конфигурацию

Общие опции:
  --config PATH         Путь к YAML/JSON-конфигу (default: configs/default.yaml, если есть)
  --concurrency INT     Override concurrency
  --max-runtime SEC     Потолок времени работы запуска (override max_runtime_seconds)
  --log-level LEVEL     Уровень логирования (DEBUG, INFO, ...)
  --log-file PATH       Файл для логов (stdout, если не указан)
  --log-format FORMAT   Формат логирования

Опции отчётов (crawl, batch, deep):
  --json PATH           Сохранить JSON-отчёт в файл
  --html PATH           Сохранить HTML-отчёт в файл
  --template DIR        Папка с Jinja2-шаблонами
  --pretty              Преформатировать JSON-вывод (отступ 2)

Пример:
  directory-crawler --config configs/default.yaml deep https://example.com --max-depth 2 --pretty
"""
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict

import click

from directory_crawler import __version__
from directory_crawler.aggregator import CrawlReport, aggregate_results
from directory_crawler.config import CrawlerConfig, load_config
from directory_crawler.crawler.errors import CrawlerError
from directory_crawler.engine import refresh_website, start_batch, start_crawl, start_deep
from directory_crawler.logger import init_logging
from directory_crawler.report.html_report import render_html
from directory_crawler.report.json_report import render_json

CONTEXT_SETTINGS = dict(help_option_names=["--help"])
_DEFAULT_CONFIG = Path("configs/default.yaml")


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


def report_options(func):
    """Общие опции вывода отчёта."""
    func = click.option('--pretty', is_flag=True, help='Преформатировать JSON-вывод (отступ 2)')(func)
    func = click.option(
        '--template', '-t', 'template_dir',
        default=None,
        type=click.Path(exists=True, file_okay=False, path_type=Path),
        help='Папка с Jinja2-шаблонами (по умолчанию встроенный шаблон)'
    )(func)
    func = click.option(
        '--html', 'html_output',
        default=None,
        type=click.Path(writable=True, dir_okay=False, path_type=Path),
        help='Сохранить HTML-отчёт в файл'
    )(func)
    func = click.option(
        '--json', '-j', 'json_output',
        default=None,
        type=click.Path(writable=True, dir_okay=False, path_type=Path),
        help='Сохранить JSON-отчёт в файл'
    )(func)
    return func


def emit_report(report: CrawlReport, json_output, html_output, template_dir, pretty) -> None:
    """Печатает отчёт в stdout или сохраняет в файлы."""
    if not json_output and not html_output:
        click.echo(report.json(pretty=pretty))
        return

    if json_output:
        try:
            saved_json = render_json(report, json_output)
            click.echo(f'JSON report: {saved_json}')
        except Exception as e:
            print_error(f'Ошибка при сохранении JSON: {e}')

    if html_output:
        try:
            saved_html = render_html(report, template_dir, html_output)
            click.echo(f'HTML report: {saved_html}')
        except Exception as e:
            print_error(f'Ошибка при сохранении HTML: {e}')


def _run(coro):
    try:
        return asyncio.run(coro)
    except CrawlerError as e:
        print_error(f'Ошибка обхода: {e}')
    except Exception as e:
        print_error(f'Ошибка при обходе: {e}')


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='DirectoryCrawler, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Путь к файлу конфигурации YAML/JSON.'
)
@click.option('--concurrency', type=click.IntRange(min=1), default=None, help='Число одновременных запросов')
@click.option('--max-runtime', 'max_runtime', type=click.FloatRange(min=0, min_open=True), default=None,
              help='Потолок времени работы (секунд)')
@click.option(
    '--log-level', 'log_level',
    default='INFO', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Уровень логирования'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Путь к файлу логов (stdout, если не указан)'
)
@click.option(
    '--log-format', 'log_format',
    default='%(asctime)s %(levelname)s %(name)s %(message)s',
    show_default=True,
    help='Строка формата для логов'
)
@click.pass_context
def cli(ctx, config_path, concurrency, max_runtime, log_level, log_file, log_format):
    """Группа команд DirectoryCrawler CLI."""
    init_logging(
        level=log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    try:
        if config_path is None and not _DEFAULT_CONFIG.exists():
            cfg = CrawlerConfig()
        else:
            cfg = load_config(config_path)
    except Exception as e:
        print_error(f'Ошибка загрузки конфигурации: {e}')
    overrides: Dict[str, Any] = {}
    if concurrency is not None:
        overrides['concurrency'] = concurrency
    if max_runtime is not None:
        overrides['max_runtime_seconds'] = max_runtime
    if overrides:
        try:
            cfg = CrawlerConfig(**{**cfg.model_dump(), **overrides})
        except Exception as e:
            print_error(f'Ошибка в параметрах: {e}')
    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg


@cli.command('crawl', context_settings=CONTEXT_SETTINGS)
@click.argument('url')
@report_options
@click.pass_context
def crawl(ctx, url, json_output, html_output, template_dir, pretty):
    """Обойти одну страницу и вывести метаданные, технологии и ссылки."""
    result = _run(start_crawl(ctx.obj['config'], url))
    emit_report(aggregate_results(result), json_output, html_output, template_dir, pretty)


@cli.command('batch', context_settings=CONTEXT_SETTINGS)
@click.argument('urls', nargs=-1)
@click.option(
    '--file', '-f', 'url_file',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Файл со списком URL (по одному в строке, # начинает комментарий)'
)
@report_options
@click.pass_context
def batch(ctx, urls, url_file, json_output, html_output, template_dir, pretty):
    """Обойти несколько независимых URL; ошибки одного не влияют на другие."""
    targets = list(urls)
    if url_file is not None:
        for line in url_file.read_text(encoding='utf-8').splitlines():
            line = line.split('#', 1)[0].strip()
            if line:
                targets.append(line)
    if not targets:
        print_error('Не указано ни одного URL')
    result = _run(start_batch(ctx.obj['config'], targets))
    emit_report(aggregate_results(result), json_output, html_output, template_dir, pretty)


@cli.command('deep', context_settings=CONTEXT_SETTINGS)
@click.argument('url')
@click.option('--max-depth', '-d', 'max_depth', type=click.IntRange(min=0), default=None,
              help='Максимальная глубина (override max_depth)')
@report_options
@click.pass_context
def deep(ctx, url, max_depth, json_output, html_output, template_dir, pretty):
    """Обойти сайт в ширину, начиная с URL."""
    result = _run(start_deep(ctx.obj['config'], url, max_depth))
    emit_report(aggregate_results(result), json_output, html_output, template_dir, pretty)


@cli.command('refresh', context_settings=CONTEXT_SETTINGS)
@click.argument('key')
@click.option('--register', is_flag=True, help='Создать запись, если домена нет в хранилище')
@click.pass_context
def refresh(ctx, key, register):
    """Повторно обойти сайт (домен или id) и обновить запись в хранилище."""
    record = _run(refresh_website(ctx.obj['config'], key, register=register))
    click.echo(record.model_dump_json(indent=2))


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Показать текущую конфигурацию в JSON."""
    cfg = ctx.obj['config']
    click.echo(json.dumps(cfg.model_dump(mode='json'), ensure_ascii=False, indent=2))


if __name__ == "__main__":
    cli()
