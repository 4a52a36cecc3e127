"""
Concurrent streaming execution of a pipeline over JSON-lines inputs.

One reader thread batches records from the sources, ``process_workers``
threads run the batches through the pipeline and ``write_workers`` threads
write results and report errors. Stages are connected by bounded queues, so
a slow stage holds back the ones feeding it.
"""

import sys
import threading
from dataclasses import dataclass, field
from typing import IO, Any, Iterator, List, Optional

from tqdm import tqdm

from ..all_dataclass import StreamConfig
from ..data_processing.batch_processor import Record, batch_records, iter_records, serialize_record
from ..models.exceptions import CombinedError, PipelineError
from ..pipelines.base import BasePipeline
from ..utils.file_system import STDIO, FileSystem, join_path
from ..utils.project_logger import get_logger
from .channels import ClosableQueue, drain_any

INPUT_SUFFIX = ".jsonl"


@dataclass
class StreamError:
    """An error routed to the write workers, with the records it affected."""
    error: BaseException
    records: List[Record] = field(default_factory=list)
    source: str = ""


@dataclass
class StreamSummary:
    records_read: int = 0
    batches: int = 0
    results_written: int = 0
    errors: int = 0


class StreamDriver:
    """Runs a pipeline over every record of the given sources.

    Each accepted input record produces exactly one result line or one error
    line. Records keep their order inside a batch; across batches order is
    kept only with a single process worker.
    """

    def __init__(
        self,
        pipeline: BasePipeline,
        config: Optional[StreamConfig] = None,
        *,
        sources: List[str],
        output_dir: Optional[str] = None,
        file_system: Optional[FileSystem] = None,
        stdout: Optional[IO[str]] = None,
        logger: Optional[Any] = None
    ) -> None:
        self.pipeline = pipeline
        self.config = config or StreamConfig()
        self.sources = list(sources) or [STDIO]
        self.output_dir = output_dir
        self.file_system = file_system or FileSystem()
        self.stdout = stdout or sys.stdout
        self.logger = logger or get_logger("stream")

        self.summary = StreamSummary()
        self._summary_lock = threading.Lock()
        self._stdout_lock = threading.Lock()
        self._failures: List[BaseException] = []
        self._progress: Optional[tqdm] = None

    def _count(self, **increments: int) -> None:
        with self._summary_lock:
            for name, value in increments.items():
                setattr(self.summary, name, getattr(self.summary, name) + value)

    def _fail(self, error: BaseException) -> None:
        with self._summary_lock:
            self._failures.append(error)

    def _read_records(self, errors: ClosableQueue) -> Iterator[Record]:
        """Records of every source in turn; a bad source is reported and skipped."""
        for source in self.sources:
            try:
                paths = self.file_system.walk(source)
            except PipelineError as e:
                errors.put(StreamError(error=e, source=source))
                continue
            for path in paths:
                if path != STDIO and not path.endswith(INPUT_SUFFIX):
                    self.logger.debug(f"Skipping {path}, not a {INPUT_SUFFIX} file")
                    continue
                self.logger.debug(f"Reading {path}")
                try:
                    for record in iter_records(self.file_system.iter_lines(path), source=path):
                        self._count(records_read=1)
                        yield record
                except PipelineError as e:
                    errors.put(StreamError(error=e, source=path))

    def _reader(self, batches: ClosableQueue, errors: ClosableQueue) -> None:
        try:
            for batch in batch_records(self._read_records(errors), self.config.batch_size):
                batches.put(batch)
                self._count(batches=1)
        except Exception as e:
            self.logger.error(f"Reader stopped: {e}")
            self._fail(e)
        finally:
            batches.close()

    def _process_worker(self, batches: ClosableQueue, results: ClosableQueue, errors: ClosableQueue) -> None:
        for batch in batches:
            try:
                output = self.pipeline.run([record["input"] for record in batch])
                values = output.get_output()
                if len(values) != len(batch):
                    raise PipelineError(
                        f"pipeline returned {len(values)} outputs for a batch of {len(batch)} inputs"
                    )
                lines = []
                for record, value in zip(batch, values):
                    record["output"] = value
                    lines.append(serialize_record(record))
            except Exception as e:
                errors.put(StreamError(error=e, records=batch))
                continue
            results.put(lines)

    def _open_sink(self, worker_id: int) -> IO[str]:
        if self.output_dir is None or self.output_dir == STDIO:
            return self.stdout
        return self.file_system.new_writer(join_path(self.output_dir, f"result-{worker_id}.jsonl"))

    def _write(self, sink: IO[str], lines: List[str]) -> None:
        text = "".join(f"{line}\n" for line in lines)
        if sink is self.stdout:
            with self._stdout_lock:
                sink.write(text)
                sink.flush()
        else:
            sink.write(text)

    def _report(self, item: StreamError) -> None:
        if not item.records:
            self.logger.error(f"Error reading {item.source}: {item.error}")
            self._count(errors=1)
            return
        for record in item.records:
            self.logger.error(f"Error processing input {record['input']!r}: {item.error}")
        self._count(errors=len(item.records))

    def _write_worker(self, worker_id: int, results: ClosableQueue, errors: ClosableQueue) -> None:
        try:
            sink = self._open_sink(worker_id)
        except Exception as e:
            self._fail(e)
            sink = None

        try:
            for index, item in drain_any(results, errors):
                if index == 1:
                    self._report(item)
                    continue
                if sink is None:
                    self.logger.error(f"Dropping {len(item)} results, sink {worker_id} could not be opened")
                    self._count(errors=len(item))
                    continue
                try:
                    self._write(sink, item)
                except Exception as e:
                    self.logger.error(f"Error writing {len(item)} results: {e}")
                    self._count(errors=len(item))
                    continue
                self._count(results_written=len(item))
                if self._progress is not None:
                    self._progress.update(len(item))
        finally:
            if sink is not None and sink is not self.stdout:
                try:
                    sink.close()
                except Exception as e:
                    self._fail(e)

    def run(self) -> StreamSummary:
        """Start every worker, wait for all of them and return the summary.

        Raises:
            CombinedError: With reader and teardown failures, after all workers finished
        """
        bound = self.config.queue_bound
        batches: ClosableQueue = ClosableQueue(bound)
        condition = threading.Condition()
        results: ClosableQueue = ClosableQueue(bound, condition)
        errors: ClosableQueue = ClosableQueue(bound, condition)

        if self.output_dir is not None and self.output_dir != STDIO:
            self.file_system.make_dirs(self.output_dir)
        self._progress = tqdm(
            unit="records", file=sys.stderr, disable=not self.config.show_progress
        )

        reader = threading.Thread(target=self._reader, args=(batches, errors), name="reader")
        processors = [
            threading.Thread(target=self._process_worker, args=(batches, results, errors), name=f"process-{i}")
            for i in range(self.config.process_workers)
        ]
        writers = [
            threading.Thread(target=self._write_worker, args=(i, results, errors), name=f"write-{i}")
            for i in range(self.config.write_workers)
        ]
        for thread in [reader] + processors + writers:
            thread.start()

        reader.join()
        for thread in processors:
            thread.join()
        results.close()
        errors.close()
        for thread in writers:
            thread.join()
        self._progress.close()

        self.logger.info(
            f"Stream finished: {self.summary.records_read} records in {self.summary.batches} batches, "
            f"{self.summary.results_written} written, {self.summary.errors} errors"
        )
        if self._failures:
            raise CombinedError(self._failures)
        return self.summary
