# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */


"""Task model, task runner, and the command-level run wrapper."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any

from solo_manager import console, logger
from solo_manager.errors import SoloError

Action = Callable[[Any], Any]
SkipCheck = Callable[[Any], bool]


# ============================================================================
# Task model
# ============================================================================

@dataclass
class Task:
    """A named unit of work.

    Attributes:
        title: Display title.
        action: Callable taking the context. A returned TaskList runs as
            nested subtasks; any other return value is ignored.
        skip: Predicate on the context, or a constant; a true value means the
            action never runs.
    """

    title: str
    action: Action
    skip: SkipCheck | bool | None = None

    def should_skip(self, ctx: Any) -> bool:
        if self.skip is None:
            return False
        if callable(self.skip):
            return bool(self.skip(ctx))
        return bool(self.skip)


@dataclass
class TaskList:
    """An ordered group of tasks run sequentially or concurrently.

    Attributes:
        tasks: Tasks in start order.
        concurrent: Start every task at once and wait for all of them.
    """

    tasks: list[Task] = field(default_factory=list)
    concurrent: bool = False

    def __iter__(self):
        return iter(self.tasks)

    def __len__(self) -> int:
        return len(self.tasks)


# ============================================================================
# Runner
# ============================================================================

class TaskRunner:
    """Executes task lists against a shared context.

    Sequential groups stop at the first failure. Concurrent groups run each
    task on its own worker thread, wait for every started sibling to settle,
    then re-raise the first failure. Siblings that have not started by the
    time a failure is recorded never start.
    """

    def run(self, tasks: TaskList | Iterable[Task], ctx: Any, depth: int = 0) -> None:
        task_list = tasks if isinstance(tasks, TaskList) else TaskList(list(tasks))
        if task_list.concurrent:
            self._run_concurrent(task_list, ctx, depth)
            return
        for task in task_list:
            self._run_task(task, ctx, depth)

    def _run_task(self, task: Task, ctx: Any, depth: int) -> None:
        indent = "  " * depth
        if task.should_skip(ctx):
            console.print(f"[yellow]{indent}ℹ️  Skipping: {task.title}[/yellow]")
            return
        if depth == 0:
            console.print(f"[yellow]ℹ️  {task.title}...[/yellow]")
        nested = task.action(ctx)
        # plain return values of an action are ignored
        if isinstance(nested, TaskList):
            self.run(nested, ctx, depth + 1)
        console.print(f"[green]{indent}✅ {task.title}[/green]")

    def _run_concurrent(self, task_list: TaskList, ctx: Any, depth: int) -> None:
        tasks = list(task_list)
        if not tasks:
            return

        failed = threading.Event()
        outputs: dict[int, str] = {}
        lock = threading.Lock()

        def _run_one(index: int, task: Task) -> None:
            if failed.is_set():
                logger.debug("Not starting task after sibling failure: %s", task.title)
                return
            with console.buffered() as buf:
                try:
                    self._run_task(task, ctx, depth)
                except Exception:
                    failed.set()
                    raise
                finally:
                    if buf is not None:
                        with lock:
                            outputs[index] = buf.getvalue()

        first_error: BaseException | None = None
        with ThreadPoolExecutor(max_workers=len(tasks)) as executor:
            futures = {executor.submit(_run_one, i, t): t for i, t in enumerate(tasks)}
            for future in as_completed(futures):
                try:
                    future.result()
                except Exception as err:
                    if first_error is None:
                        first_error = err
                    else:
                        logger.debug("Discarding error from task %s: %s", futures[future].title, err)

        for index in range(len(tasks)):
            if outputs.get(index):
                console.print(outputs[index], end="")

        if first_error is not None:
            raise first_error


# ============================================================================
# Command boundary
# ============================================================================

def run_tasks(
    tasks: TaskList | Iterable[Task],
    ctx: Any,
    *,
    error_title: str,
    cleanup: Iterable[Callable[[], None]] = (),
    runner: TaskRunner | None = None,
) -> None:
    """Run a command's tasks, then always run its cleanup callbacks.

    Cleanup callbacks (lease release, client close, port-forward close) run
    in order before any error leaves this function. Their own failures are
    logged and dropped so the task error stays the reported cause.

    Args:
        tasks: Top-level tasks of the command.
        ctx: Context threaded through every task.
        error_title: Prefix of the wrapped error message.
        cleanup: Callbacks to run after the tasks, on success or failure.
        runner: Runner to use; a new :class:`TaskRunner` by default.

    Raises:
        SoloError: Wrapping the first task failure.
    """
    runner = runner or TaskRunner()
    try:
        runner.run(tasks, ctx)
    except Exception as err:
        logger.debug("%s", error_title, exc_info=True)
        raise SoloError(f"{error_title}: {err}", err) from err
    finally:
        for fn in cleanup:
            try:
                fn()
            except Exception as exc:
                logger.warning("Cleanup step failed: %s", exc)
        config = getattr(ctx, "config", None)
        if config is not None and hasattr(config, "unused_fields"):
            logger.debug("Unused config fields: %s", ", ".join(config.unused_fields()))
