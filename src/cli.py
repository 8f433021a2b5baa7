"""Command-line interface over the task store.

Tasks are referenced either by their 1-based position in manual order
(as printed by ``list --sort manual``) or by id / unique id prefix.
Categories are referenced by name (case-insensitive) or id.
"""
import functools
import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import click

from errors import NotFoundError, TaskTrackError
from export import write_export
from models import (
    CategoryFilter, CategoryInput, CategoryPatch, SortBy, SortDirection, Task, TaskFilter,
    TaskInput, TaskPatch, TaskPriority,
)
from store import TaskStore

logger = logging.getLogger(__name__)

PRIORITY_ALIASES = {
    'l': 'low', 'low': 'low',
    'm': 'medium', 'medium': 'medium',
    'h': 'high', 'high': 'high',
    'c': 'critical', 'critical': 'critical',
}
STATUS_CHOICES = [f.value for f in TaskFilter]
SORT_CHOICES = [s.value for s in SortBy] + ['manual']
PRIORITY_COLOR = {
    TaskPriority.LOW: 'bright_black',
    TaskPriority.MEDIUM: 'blue',
    TaskPriority.HIGH: 'yellow',
    TaskPriority.CRITICAL: 'red',
}
NO_CATEGORY = 'none'


# -------------------- helpers --------------------
def _store(ctx: click.Context) -> TaskStore:
    return ctx.obj['store']


def _color_enabled(ctx: click.Context) -> bool:
    settings = ctx.obj.get('settings')
    return bool(settings.color) if settings is not None else False


def _hex_to_rgb(hex_code: str):
    h = hex_code.lstrip('#')
    return int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)


def domain_errors(fn):
    """Turn domain errors into click errors (message on stderr, exit code 1)."""
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except TaskTrackError as exc:
            logger.debug("Command failed: %s", exc.message)
            raise click.ClickException(exc.message) from exc
    return wrapper


def _priority(value: Optional[str]) -> Optional[TaskPriority]:
    if value is None:
        return None
    key = PRIORITY_ALIASES.get(value.lower())
    if key is None:
        raise click.BadParameter(f'unknown priority {value!r}; use low/medium/high/critical')
    return TaskPriority(key)


def resolve_task(store: TaskStore, ref: str) -> str:
    ref = ref.strip().rstrip('.')
    ids = store.ordered_ids()
    if ref.isdigit() and 1 <= int(ref) <= len(ids):
        return ids[int(ref) - 1]
    if ref in ids:
        return ref
    matches = [tid for tid in ids if tid.startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    raise NotFoundError('Task not found')


def resolve_category(store: TaskStore, ref: Optional[str]) -> Optional[str]:
    if ref is None or ref.lower() == NO_CATEGORY:
        return None
    for cat in store.categories:
        if cat.id == ref or cat.name.lower() == ref.strip().lower():
            return cat.id
    raise NotFoundError('Category not found')


def format_task(store: TaskStore, task: Task, color: bool = False) -> str:
    mark = 'x' if task.is_completed else ' '
    title = task.title
    priority = task.priority.value
    if color:
        title = click.style(title, dim=task.is_completed)
        priority = click.style(priority, fg=PRIORITY_COLOR[task.priority])
    parts = [f'{task.custom_order + 1}. [{mark}] {title} ({priority})']
    if task.due_date:
        due = f'due {task.due_date.isoformat()}'
        if color and store.is_overdue(task.id):
            due = click.style(due, fg='red', bold=True)
        parts.append(due)
    if task.category_id:
        cat = store.get_category(task.category_id)
        if cat is not None:
            label = f'@{cat.name}'
            parts.append(click.style(label, fg=_hex_to_rgb(cat.color)) if color else label)
    if task.tags:
        parts.append(' '.join(f'#{t}' for t in task.tags))
    return '  '.join(parts)


# -------------------- root group --------------------
@click.group(name='tasktrack')
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Personal task tracker."""
    ctx.ensure_object(dict)
    if 'store' not in ctx.obj:
        from main import build_store  # local import to avoid cycle
        ctx.obj['store'] = build_store(ctx.obj.get('settings'))


# -------------------- tasks --------------------
@cli.command()
@click.argument('title', nargs=-1, required=True)
@click.option('-d', '--description', default='')
@click.option('-p', '--priority')
@click.option('--due', type=click.DateTime(formats=['%Y-%m-%d']))
@click.option('-c', '--category')
@click.option('-t', '--tag', 'tags', multiple=True)
@click.pass_context
@domain_errors
def add(ctx, title, description, priority, due, category, tags):
    """Add a task."""
    store = _store(ctx)
    task = store.add_task(TaskInput(
        title=' '.join(title).strip(),
        description=description,
        priority=_priority(priority),
        due_date=due.date() if due else None,
        category_id=resolve_category(store, category),
        tags=list(tags),
    ))
    click.echo(f'Added #{task.custom_order + 1}: {task.title}')


@cli.command(name='list')
@click.option('-s', '--status', type=click.Choice(STATUS_CHOICES))
@click.option('-c', '--category', 'categories', multiple=True,
              help="Category name or id; 'none' selects uncategorized tasks.")
@click.option('-t', '--tag', 'tags', multiple=True)
@click.option('-q', '--search')
@click.option('--sort', type=click.Choice(SORT_CHOICES))
@click.option('--asc/--desc', 'ascending', default=None)
@click.pass_context
@domain_errors
def list_tasks(ctx, status, categories, tags, search, sort, ascending):
    """List tasks through the stored filters; options override them for this run."""
    store = _store(ctx)
    query = store.current_query()
    if status:
        query = replace(query, status=TaskFilter(status))
    if categories:
        values = [resolve_category(store, c) for c in categories]
        query = replace(query, categories=CategoryFilter.from_list(values))
    if tags:
        query = replace(query, tags=tuple(tags))
    if search is not None:
        query = replace(query, search=search)
    if sort:
        query = replace(query, sort_by=None if sort == 'manual' else SortBy(sort))
    if ascending is not None:
        query = replace(query, direction=SortDirection.ASC if ascending else SortDirection.DESC)
    tasks = store.query(query)
    if not tasks:
        click.echo('(no tasks)')
        return
    color = _color_enabled(ctx)
    for task in tasks:
        click.echo(format_task(store, task, color))


@cli.command()
@click.argument('ref')
@click.pass_context
@domain_errors
def show(ctx, ref):
    """Show every field of a task."""
    store = _store(ctx)
    task = store.get_task(resolve_task(store, ref))
    category = store.get_category(task.category_id) if task.category_id else None
    rows = [
        ('id', task.id),
        ('title', task.title),
        ('description', task.description),
        ('status', task.status.value),
        ('priority', task.priority.value),
        ('due', task.due_date.isoformat() if task.due_date else ''),
        ('category', category.name if category else ''),
        ('tags', ', '.join(task.tags)),
        ('position', str(task.custom_order + 1)),
        ('created', task.created_at.isoformat() if task.created_at else ''),
        ('updated', task.updated_at.isoformat() if task.updated_at else ''),
        ('completed', task.completed_at.isoformat() if task.completed_at else ''),
    ]
    for label, value in rows:
        click.echo(f'{label:<12}{value}')


@cli.command()
@click.argument('ref')
@click.option('--title')
@click.option('-d', '--description')
@click.option('-p', '--priority')
@click.option('--due', type=click.DateTime(formats=['%Y-%m-%d']))
@click.option('--no-due', is_flag=True, help='Clear the due date.')
@click.option('-c', '--category', help="Category name or id; 'none' clears it.")
@click.pass_context
@domain_errors
def edit(ctx, ref, title, description, priority, due, no_due, category):
    """Edit task fields."""
    store = _store(ctx)
    patch = TaskPatch()
    if title is not None:
        patch.title = title
    if description is not None:
        patch.description = description
    if priority is not None:
        patch.priority = _priority(priority)
    if no_due:
        patch.due_date = None
    elif due is not None:
        patch.due_date = due.date()
    if category is not None:
        patch.category_id = resolve_category(store, category)
    task = store.update_task(resolve_task(store, ref), patch)
    click.echo(f'Updated: {task.title}')


@cli.command()
@click.argument('ref')
@click.pass_context
@domain_errors
def done(ctx, ref):
    """Toggle a task between pending and completed."""
    store = _store(ctx)
    task = store.toggle_complete(resolve_task(store, ref))
    click.echo(f'{task.title}: {task.status.value}')


@cli.command()
@click.argument('ref')
@click.pass_context
@domain_errors
def rm(ctx, ref):
    """Delete a task."""
    store = _store(ctx)
    tid = resolve_task(store, ref)
    title = store.get_task(tid).title
    store.delete_task(tid)
    click.echo(f'Task "{title}" removed.')


@cli.command()
@click.argument('ref')
@click.argument('where')
@click.argument('position', type=int, required=False)
@click.pass_context
@domain_errors
def move(ctx, ref, where, position):
    """Move a task: 'up', 'down', 'to N' or just N (1-based)."""
    store = _store(ctx)
    tid = resolve_task(store, ref)
    where = where.lower()
    if where == 'up':
        moved = store.move_up(tid)
    elif where == 'down':
        moved = store.move_down(tid)
    elif where == 'to' and position is not None:
        moved = store.move_to_position(tid, position - 1)
    elif where.isdigit():
        moved = store.move_to_position(tid, int(where) - 1)
    else:
        raise click.BadParameter("use 'up', 'down', 'to N' or a position number", param_hint='WHERE')
    if not moved:
        click.echo('Task already there.')


# -------------------- view preferences --------------------
@cli.command(name='filter')
@click.option('-s', '--status', type=click.Choice(STATUS_CHOICES))
@click.option('-c', '--category', 'categories', multiple=True)
@click.option('-t', '--tag', 'tags', multiple=True)
@click.option('--clear', is_flag=True, help='Reset every stored filter.')
@click.pass_context
@domain_errors
def set_filters(ctx, status, categories, tags, clear):
    """Store the default filters used by 'list'."""
    store = _store(ctx)
    if clear:
        store.set_filter(TaskFilter.ALL)
        store.clear_category_filter()
        store.clear_tag_filter()
    if status:
        store.set_filter(TaskFilter(status))
    if categories:
        store.set_category_filter([resolve_category(store, c) for c in categories])
    if tags:
        store.set_tag_filter(list(tags))
    click.echo(f'status={store.current_filter.value} '
               f'categories={len(store.category_filters)} tags={",".join(store.tag_filters)}')


@cli.command(name='sort')
@click.argument('key', type=click.Choice([s.value for s in SortBy]), required=False)
@click.option('--asc/--desc', 'ascending', default=None)
@click.option('--toggle', is_flag=True, help='Flip the current direction.')
@click.pass_context
@domain_errors
def set_sort(ctx, key, ascending, toggle):
    """Store the default sort used by 'list'."""
    store = _store(ctx)
    if key:
        store.set_sort_by(SortBy(key))
    if ascending is not None:
        store.set_sort_direction(SortDirection.ASC if ascending else SortDirection.DESC)
    if toggle:
        store.toggle_sort_direction()
    click.echo(f'sort={store.sort_by.value} {store.sort_direction.value}')


# -------------------- tags --------------------
@cli.group()
def tag():
    """Tag operations."""


@tag.command(name='add')
@click.argument('ref')
@click.argument('name')
@click.pass_context
@domain_errors
def tag_add(ctx, ref, name):
    """Add a tag to one task."""
    store = _store(ctx)
    store.add_tag_to_task(resolve_task(store, ref), name)


@tag.command(name='rm')
@click.argument('ref')
@click.argument('name')
@click.pass_context
@domain_errors
def tag_rm(ctx, ref, name):
    """Remove a tag from one task."""
    store = _store(ctx)
    store.remove_tag_from_task(resolve_task(store, ref), name)


@tag.command(name='delete')
@click.argument('name')
@click.pass_context
@domain_errors
def tag_delete(ctx, name):
    """Remove a tag from every task."""
    count = _store(ctx).remove_tag_everywhere(name)
    click.echo(f'Removed "{name}" from {count} task(s).')


@tag.command(name='rename')
@click.argument('old')
@click.argument('new')
@click.pass_context
@domain_errors
def tag_rename(ctx, old, new):
    """Rename a tag on every task that carries it."""
    count = _store(ctx).rename_tag_everywhere(old, new)
    click.echo(f'Renamed on {count} task(s).')


@tag.command(name='merge')
@click.argument('target')
@click.argument('sources', nargs=-1, required=True)
@click.pass_context
@domain_errors
def tag_merge(ctx, target, sources):
    """Merge SOURCES into TARGET on every task."""
    count = _store(ctx).merge_tags_everywhere(list(sources), target)
    click.echo(f'Merged into "{target}" on {count} task(s).')


@tag.command(name='list')
@click.pass_context
def tag_list(ctx):
    """List every tag with its usage count."""
    store = _store(ctx)
    counts = dict((t.lower(), n) for t, n in store.tags_with_count())
    tags = store.list_all_tags()
    if not tags:
        click.echo('(no tags)')
    for name in tags:
        click.echo(f'{name} ({counts.get(name.lower(), 0)})')


# -------------------- categories --------------------
@cli.group()
def category():
    """Category operations."""


@category.command(name='add')
@click.argument('name')
@click.argument('color')
@click.pass_context
@domain_errors
def category_add(ctx, name, color):
    """Add a category with a hex color."""
    cat = _store(ctx).add_category(CategoryInput(name=name, color=color))
    click.echo(f'Added category {cat.name} {cat.color}')


@category.command(name='edit')
@click.argument('ref')
@click.option('--name')
@click.option('--color')
@click.pass_context
@domain_errors
def category_edit(ctx, ref, name, color):
    """Rename or recolor a category."""
    store = _store(ctx)
    cat = store.update_category(resolve_category(store, ref) or '',
                                CategoryPatch(name=name, color=color))
    click.echo(f'Category {cat.name} {cat.color}')


@category.command(name='rm')
@click.argument('ref')
@click.pass_context
@domain_errors
def category_rm(ctx, ref):
    """Delete a category; its tasks become uncategorized."""
    store = _store(ctx)
    store.delete_category(resolve_category(store, ref) or '')


@category.command(name='list')
@click.pass_context
def category_list(ctx):
    """List categories with their task counts."""
    store = _store(ctx)
    color = _color_enabled(ctx)
    cats = store.categories
    if not cats:
        click.echo('(no categories)')
    for cat in cats:
        name = click.style(cat.name, fg=_hex_to_rgb(cat.color)) if color else cat.name
        click.echo(f'{name} {cat.color} ({store.category_task_count(cat.id)})')


# -------------------- bulk --------------------
def _select_refs(store: TaskStore, refs) -> List[str]:
    store.clear_selection()
    for ref in refs:
        try:
            store.select(resolve_task(store, ref))
        except NotFoundError:
            click.echo(f'Skipping unknown task {ref}', err=True)
    return store.selected_ids


@cli.group()
def bulk():
    """Apply one action to several tasks."""


@bulk.command(name='complete')
@click.argument('refs', nargs=-1)
@click.pass_context
def bulk_complete(ctx, refs):
    """Complete every listed task."""
    store = _store(ctx)
    count = store.bulk_complete(_select_refs(store, refs))
    click.echo(f'Completed {count} task(s).')


@bulk.command(name='delete')
@click.argument('refs', nargs=-1)
@click.pass_context
def bulk_delete(ctx, refs):
    """Delete every listed task."""
    store = _store(ctx)
    # positions shift while deleting, so resolve everything first
    count = store.bulk_delete(_select_refs(store, refs))
    click.echo(f'Deleted {count} task(s).')


@bulk.command(name='set-category')
@click.argument('category_ref')
@click.argument('refs', nargs=-1)
@click.pass_context
@domain_errors
def bulk_set_category(ctx, category_ref, refs):
    """Set CATEGORY_REF ('none' to clear) on every listed task."""
    store = _store(ctx)
    category_id = resolve_category(store, category_ref)
    count = store.bulk_set_category(_select_refs(store, refs), category_id)
    click.echo(f'Updated {count} task(s).')


# -------------------- export --------------------
@cli.command(name='export')
@click.argument('fmt', type=click.Choice(['json', 'csv']))
@click.option('-s', '--status', type=click.Choice(STATUS_CHOICES))
@click.option('-o', '--output-dir', type=click.Path(file_okay=False, path_type=Path))
@click.pass_context
def export_cmd(ctx, fmt, status, output_dir):
    """Write tasks to a JSON or CSV file."""
    store = _store(ctx)
    status_filter = TaskFilter(status) if status else None
    content = store.export_json(status_filter) if fmt == 'json' else store.export_csv(status_filter)
    settings = ctx.obj.get('settings')
    target_dir = output_dir or (settings.export_dir if settings is not None else Path.cwd())
    path = write_export(content, target_dir, store.export_filename(fmt))
    click.echo(f'Exported to {path}')
