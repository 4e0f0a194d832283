# foundtrace

In-process distributed tracing for Python services and their tests.

`foundtrace` gives you nested spans that follow the code they wrap,
probabilistic and rate-limited sampling, stitching of traces across services,
a dump of live spans in the Chrome trace-event JSON format, and a test context
that collects finished spans into trees you can assert on. It has no
dependencies outside the standard library.

## Installation

```
pip install foundtrace
```

For running the test suite:

```
pip install "foundtrace[test]"
```

## Setting up tracing

`foundtrace.harness.init(settings)` installs the process-wide tracer built from
a `foundtrace.sampling.TracingSettings` and returns the `SpanReceiver` that
finished spans are delivered to. It returns `None` when `settings.enabled` is
false. If a tracer is already installed it is kept, and the receiver returned
by a later call gets no spans.

Until `init` is called, a tracer that samples nothing is used, so spans are
created but nothing is recorded.

Finished spans are read from the receiver with `try_recv()`, which returns a
`foundtrace.span.FinishedSpan` or `None`; iterating over the receiver drains
every span waiting.

## Spans

`foundtrace.tracing.span(name)` opens a span as a child of the current one, or
starts a new trace when there is none. The returned `SpanScope` keeps the span
current until it is closed, which also finishes the span. It is a context
manager.

```python
from foundtrace import tracing

with tracing.span("root"):
    with tracing.span("child"):
        ...
```

Other functions in `foundtrace.tracing`:

- `start_trace(root_span_name, options=None)` starts a new trace. When a sampled
  span is current, a `"[<name> ref]"` child is added to it and the two traces
  are tagged with each other's ids. `StartTraceOptions` carries
  `stitch_with_trace` (a `SpanContextState` or its string form) and
  `override_sampling_ratio` (1.0 forces sampling, 0.0 prevents it).
- `fork_trace(fork_name)` starts a forcibly sampled trace forked from the
  current sampled span, or returns an inactive span when there is none.
- `trace_id()` returns the hex trace id of the current span, or `None`.
- `state_for_trace_stitching()` returns the current span's `SpanContextState`.
  Its string form is `trace_id:span_id:0:flags` in hex and is read back with
  `SpanContextState.parse`.
- `get_active_traces()` returns the sampled spans that have not finished yet as
  Chrome trace-event JSON, suitable for `about:tracing` and compatible viewers.
- `write_current_span(write_fn)` calls `write_fn` with the current span if it
  is sampled.

Spans can also be made directly with `foundtrace.span.Tracer`:
`Tracer.create(sampler)` returns a tracer and its `SpanReceiver`, and
`tracer.span(name, child_of=None, tags=None)` starts a `Span`.

## Tags, logs and timings

`foundtrace.annotations` writes to the current span; without a sampled current
span these do nothing.

```python
from foundtrace.annotations import add_span_tags, add_span_log_fields, span_fn

@span_fn("handle_request")
def handle_request():
    add_span_tags(user_count=42, cached=True)
    add_span_tags([("region", "eu")])
    add_span_log_fields(status="ok")
```

- `add_span_tags(*args, **kwargs)` takes keyword tags and at most one mapping
  or iterable of `(name, value)` pairs. A tag replaces an earlier one of the
  same name.
- `add_span_log_fields(**kwargs)` adds one log record; its fields are sorted by
  name.
- `set_span_start_time(when)` and `set_span_finish_time(when)` override the
  span's timings with `datetime` values.
- `span_fn(name)` wraps every call of a function or coroutine function in a
  span.

## Sampling

`foundtrace.sampling` holds the settings and samplers:

- `TracingSettings(enabled=True, sampling_strategy=SamplingStrategy())`.
- `SamplingStrategy.passive()` samples only spans that continue a trace started
  elsewhere (a stitched state). `SamplingStrategy.active(settings)` uses
  `ActiveSamplingSettings(sampling_ratio=1.0, rate_limit=RateLimitingSettings())`.
- `RateLimitingSettings(enabled=False, max_events_per_second=0)` caps the
  number of sampled new traces per second when enabled.
- `ProbabilisticSampler(sampling_rate)` raises `ValueError` for a rate outside
  0.0 to 1.0. `RateLimitingProbabilisticSampler.from_settings(settings)`
  combines it with a `RateLimiter`.

Children of a sampled span are always sampled.

## Testing

`foundtrace.context.TestTracingContext` collects the traces of spans made
while one of its scopes is active, independently of the process-wide tracer:

```python
from foundtrace import tracing
from foundtrace.context import TestTracingContext
from foundtrace.testing import TestTraceOptions, test_trace

ctx = TestTracingContext()
with ctx.scope():
    with tracing.span("root"):
        with tracing.span("child"):
            pass

assert ctx.traces() == [test_trace("root", ["child"])]
```

The context itself is also a context manager that enters a scope.
`set_tracing_settings(settings)` replaces its tracer and starts collecting
afresh; it takes effect in scopes entered afterwards.

In `foundtrace.testing`:

- `test_trace(name, children=(), logs=(), tags=())` builds an expected
  `TestTrace`; children may be names, `TestSpan`s or `TestTrace`s, and logs
  are sorted by field name.
- `TestTrace.iter()` walks the spans depth first.
- `TestTraceOptions` chooses whether logs, tags and start and finish times are
  kept; left out, they are empty or the Unix epoch.
- `create_test_tracer(settings)` returns a tracer and a `TestTracesSink` whose
  `traces(options)` assembles finished spans into trees ordered by start time.

## Generating syscall tables

```
GLIBC_REPO_URL=<git url of glibc> foundtrace-gen-syscalls --out-dir generated
```

shallow-clones glibc with `git` into `<target-dir>/glibc` (default `target`,
which must exist), reads the aarch64 and x86_64 syscall headers and writes
`aarch64.py` and `x86_64.py` into the output directory (default: the current
directory), each defining a `Syscall` `IntEnum` of syscall names and numbers.
`git` must be on the `PATH`. With `--glibc-dir` an existing checkout is used
and nothing is cloned.

The same steps are available as functions in `foundtrace.syscall_enum`:
`get_syscall_list`, `render_syscall_module`, `write_syscall_module` and
`fetch_glibc_sources`.

## What it does not do

Spans stop at the `SpanReceiver`: the package does not send them to a tracing
collector over UDP, gRPC or any other transport, and it runs no HTTP server for
health checks, metrics or the live trace dump. Reading the receiver and
serving `get_active_traces()` are left to the application.