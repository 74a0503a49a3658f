"""Reads build log lines from a file or from a pipe."""

import sys

from xcode_ir_extractor.util.errors import LogReadError

STDIN_SENTINEL = '-'


def _stream_lines(stream, echo, echo_stream):
  for line in stream:
    line = line.rstrip('\n')
    if echo:
      # Show the user the build is progressing when it is piped in.
      print(line, file=echo_stream)
    yield line


def read_log_lines(log_path, echo=False, stdin=None, echo_stream=None):
  """Yields the lines of a build log.

  Args:
    log_path: path to a log file, or `-` to read the standard input until the
      end of the stream.
    echo: whether to print each line read from the standard input.
    stdin: stream to use in place of sys.stdin.
    echo_stream: stream echoed lines are printed to, sys.stdout by default.
  """
  if log_path == STDIN_SENTINEL:
    stream = stdin or sys.stdin
    if hasattr(stream, 'reconfigure'):
      # Decode pipes as leniently as log files.
      stream.reconfigure(encoding='utf-8', errors='replace')
    yield from _stream_lines(stream, echo, echo_stream or sys.stdout)
    return
  try:
    with open(log_path, encoding='utf-8', errors='replace') as log_file:
      yield from _stream_lines(log_file, False, None)
  except OSError as error:
    raise LogReadError(log_path, error) from error
