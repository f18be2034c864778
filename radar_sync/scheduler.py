"""Planificador de jobs periódicos sobre un pool fijo de hilos.

Cada job tiene nombre, disparador (ritmo fijo desde el inicio o una hora
diaria, o una única ejecución) y un lock: si la ejecución anterior no ha
terminado, el tick se omite en lugar de solaparse. Varios jobs pueden compartir
lock para no ejecutarse nunca a la vez. Un error en un job se registra y no
detiene al planificador.
"""
from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any, Callable, Optional

from radar_sync.logger import logger

IDLE_WAIT_SECONDS = 1.0


@dataclass
class ScheduledJob:
    name: str
    func: Callable[[], Any]
    next_run: datetime
    interval: Optional[timedelta] = None
    daily_at: Optional[time] = None
    lock: threading.Lock = field(default_factory=threading.Lock)
    runs: int = 0
    skipped: int = 0
    failures: int = 0
    once: bool = False

    def advance(self, now: datetime) -> None:
        """Calcula la siguiente ejecución sin recuperar los huecos perdidos."""

        if self.interval is not None:
            self.next_run += self.interval
            while self.next_run <= now:
                self.next_run += self.interval
        elif self.daily_at is not None:
            self.next_run = next_daily_run(self.daily_at, now)

    @property
    def running(self) -> bool:
        return self.lock.locked()


def next_daily_run(at: time, now: datetime) -> datetime:
    candidate = datetime.combine(now.date(), at)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class JobScheduler:
    def __init__(
        self,
        pool_size: int = 5,
        await_termination_seconds: float = 60.0,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.pool_size = pool_size
        self.await_termination_seconds = await_termination_seconds
        self.clock = clock
        self.jobs: dict[str, ScheduledJob] = {}
        self._executor = ThreadPoolExecutor(max_workers=pool_size, thread_name_prefix="radar-task")
        self._stop = threading.Event()
        self._wakeup = threading.Event()
        self._jobs_lock = threading.Lock()
        self._dispatcher: Optional[threading.Thread] = None

    def _register(self, job: ScheduledJob) -> ScheduledJob:
        with self._jobs_lock:
            if job.name in self.jobs:
                raise ValueError(f"Job ya registrado: {job.name}")
            self.jobs[job.name] = job
        self._wakeup.set()
        logger.info("[SCHED] Job '%s' registrado; primera ejecución %s", job.name, job.next_run)
        return job

    def add_fixed_rate(
        self,
        name: str,
        func: Callable[[], Any],
        interval_seconds: float,
        initial_delay_seconds: float = 0.0,
        lock: Optional[threading.Lock] = None,
    ) -> ScheduledJob:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds debe ser mayor que cero")
        job = ScheduledJob(
            name=name,
            func=func,
            next_run=self.clock() + timedelta(seconds=initial_delay_seconds),
            interval=timedelta(seconds=interval_seconds),
        )
        return self._register(self._with_lock(job, lock))

    def add_daily(
        self, name: str, func: Callable[[], Any], at: time, lock: Optional[threading.Lock] = None
    ) -> ScheduledJob:
        job = ScheduledJob(name=name, func=func, next_run=next_daily_run(at, self.clock()), daily_at=at)
        return self._register(self._with_lock(job, lock))

    def add_once(
        self,
        name: str,
        func: Callable[[], Any],
        delay_seconds: float = 0.0,
        lock: Optional[threading.Lock] = None,
    ) -> ScheduledJob:
        """Job de una sola ejecución; se da de baja en cuanto se dispara."""

        job = ScheduledJob(
            name=name, func=func, next_run=self.clock() + timedelta(seconds=delay_seconds), once=True
        )
        return self._register(self._with_lock(job, lock))

    @staticmethod
    def _with_lock(job: ScheduledJob, lock: Optional[threading.Lock]) -> ScheduledJob:
        if lock is not None:
            job.lock = lock
        return job

    def next_run_of(self, name: str) -> Optional[datetime]:
        job = self.jobs.get(name)
        return job.next_run if job else None

    def _execute(self, job: ScheduledJob) -> Any:
        try:
            job.runs += 1
            return job.func()
        except Exception:
            job.failures += 1
            logger.exception("[SCHED][ERROR] Error inesperado en el job '%s'", job.name)
            return None
        finally:
            job.lock.release()

    def trigger(self, name: str) -> Optional[Future]:
        """Lanza el job ya si no está en curso; devuelve ``None`` si se omite."""

        job = self.jobs[name]
        if not job.lock.acquire(blocking=False):
            job.skipped += 1
            logger.warning("[SCHED] Job '%s' sigue en ejecución; se omite este tick", job.name)
            return None
        try:
            future = self._executor.submit(self._execute, job)
        except RuntimeError:
            job.lock.release()
            logger.warning("[SCHED] Pool cerrado; el job '%s' no se lanza", job.name)
            return None
        # Un future cancelado antes de arrancar nunca pasa por _execute.
        future.add_done_callback(lambda f: job.lock.release() if f.cancelled() else None)
        return future

    def run_pending(self) -> list[str]:
        """Dispara los jobs vencidos. Devuelve los nombres disparados (o intentados)."""

        now = self.clock()
        with self._jobs_lock:
            due = [job for job in self.jobs.values() if job.next_run <= now]
        for job in due:
            self.trigger(job.name)
            if job.once:
                with self._jobs_lock:
                    self.jobs.pop(job.name, None)
            else:
                job.advance(now)
        return [job.name for job in due]

    def _seconds_until_next(self) -> float:
        with self._jobs_lock:
            if not self.jobs:
                return IDLE_WAIT_SECONDS
            upcoming = min(job.next_run for job in self.jobs.values())
        return max(0.0, min((upcoming - self.clock()).total_seconds(), IDLE_WAIT_SECONDS))

    def _loop(self) -> None:
        logger.info("[SCHED] Planificador iniciado con %s hilos", self.pool_size)
        while not self._stop.is_set():
            self.run_pending()
            self._wakeup.wait(self._seconds_until_next())
            self._wakeup.clear()

    def start(self) -> None:
        if self._dispatcher is not None:
            return
        self._dispatcher = threading.Thread(target=self._loop, name="radar-scheduler", daemon=True)
        self._dispatcher.start()

    def shutdown(self, wait: bool = True) -> None:
        """Detiene el despacho y espera (acotado) a los jobs en curso."""

        logger.info("[SCHED] Deteniendo planificador")
        self._stop.set()
        self._wakeup.set()
        if self._dispatcher is not None:
            self._dispatcher.join(timeout=self.await_termination_seconds)
            self._dispatcher = None
        self._executor.shutdown(wait=False, cancel_futures=True)
        if not wait:
            return
        deadline = self.clock() + timedelta(seconds=self.await_termination_seconds)
        for job in self.jobs.values():
            remaining = (deadline - self.clock()).total_seconds()
            if remaining <= 0 or not job.lock.acquire(timeout=remaining):
                logger.warning("[SCHED] Job '%s' no terminó antes del cierre", job.name)
                continue
            job.lock.release()
        logger.info("[SCHED] Planificador detenido")
