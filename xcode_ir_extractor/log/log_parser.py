"""Recovers per-target compiler invocations from an xcodebuild log."""

import dataclasses
import os
import re
import shlex
from typing import Optional

SWIFT_COMPILERS = ('swiftc',)
CLANG_COMPILERS = ('clang', 'clang++')

CLANG_SOURCE_EXTENSIONS = ('.c', '.m', '.mm', '.cpp', '.cc', '.cxx', '.C')

SWIFT_DRIVER_PREFIX = 'builtin-SwiftDriver'

# === BUILD TARGET MyApp OF PROJECT MyApp WITH CONFIGURATION Debug ===
LEGACY_TARGET_MARKER = re.compile(
    r'^=== BUILD (?:AGGREGATE |NATIVE |LEGACY )?TARGET (?P<target>.+?) '
    r'OF PROJECT (?P<project>.+?) WITH (?:THE DEFAULT )?CONFIGURATION')
# Build target MyApp of project MyApp with configuration Debug
TARGET_MARKER = re.compile(
    r'^Build target (?P<target>.+?) of project (?P<project>.+?) '
    r'with configuration')
# CompileC /path/Foo.o /path/Foo.m normal x86_64 ... (in target 'Foo' from project 'Bar')
STEP_TARGET_MARKER = re.compile(
    r"\(in target '(?P<target>[^']+)' from project '(?P<project>[^']+)'\)\s*$")
COMPILER_START = re.compile(
    r'^(?:builtin-SwiftDriver\s+--\s+)?(?:(?:\\\s|\S)*/)?'
    r'(?P<tool>swiftc|clang\+\+|clang)(?=\s|$)')
BUILD_FAILED_MARKERS = ('** BUILD FAILED **', '** ARCHIVE FAILED **')


@dataclasses.dataclass(frozen=True)
class CompilerInvocation:
  target: str
  tool: str
  working_directory: Optional[str]
  arguments: tuple
  module_name: str
  input_files: tuple
  language: str

  def command_vector(self):
    return [self.tool] + list(self.arguments)


@dataclasses.dataclass(frozen=True)
class LogWarning:
  line_number: int
  line: str
  reason: str


def _option_value(arguments, option):
  try:
    return arguments[arguments.index(option) + 1]
  except (ValueError, IndexError):
    return None


class XcodeLogParser:
  """Segments an xcodebuild log into per-target compiler invocations.

  The parser is a small state machine. Outside of any target every line is
  ignored; once a target boundary (a BUILD TARGET banner or a step header
  naming its target) has been seen, compiler command lines are collected for
  that target. Lines ending in a backslash are joined with the following
  line. Malformed command lines are recorded in `warnings` and skipped.

  Lines can be fed one at a time through `feed` and `finish`, or all at once
  through `parse`; both give the same result.
  """

  def __init__(self, context):
    self.logger = context.logger
    self.reset()

  def reset(self):
    self.targets_to_commands = {}
    self.warnings = []
    self.build_failed = False
    self._current_target = None
    self._working_directory = None
    self._pending = None
    self._pending_line_number = 0
    self._line_number = 0

  def _warn(self, line_number, line, reason):
    warning = LogWarning(line_number=line_number, line=line, reason=reason)
    self.warnings.append(warning)
    self.logger.warning(f'Skipping build log line {line_number}: {reason}')

  def _enter_target(self, target):
    if target != self._current_target:
      self.logger.debug(f'Found target {target} in build log')
    self._current_target = target
    self._working_directory = None

  def feed(self, line):
    self._line_number += 1
    line = line.rstrip('\r\n')
    stripped = line.strip()

    if self._pending is not None:
      self._pending.append(stripped)
      if not stripped.endswith('\\'):
        self._flush()
      return

    if any(marker in stripped for marker in BUILD_FAILED_MARKERS):
      self.build_failed = True
      return

    target_match = (
        LEGACY_TARGET_MARKER.match(stripped) or TARGET_MARKER.match(stripped) or
        STEP_TARGET_MARKER.search(stripped))
    if target_match is not None:
      self._enter_target(target_match.group('target'))
      return

    if stripped.startswith('cd '):
      try:
        self._working_directory = shlex.split(stripped[3:])[0]
      except (ValueError, IndexError):
        self._warn(self._line_number, line, 'unreadable working directory')
      return

    if COMPILER_START.match(stripped) is None:
      return

    self._pending = [stripped]
    self._pending_line_number = self._line_number
    if not stripped.endswith('\\'):
      self._flush()

  def _flush(self):
    physical_lines = self._pending
    line_number = self._pending_line_number
    self._pending = None
    command = ' '.join(
        physical_line[:-1].rstrip() if physical_line.endswith('\\') else
        physical_line for physical_line in physical_lines)

    if self._current_target is None:
      self._warn(line_number, command,
                 'compiler invocation outside of any target')
      return
    try:
      tokens = shlex.split(command)
    except ValueError as error:
      self._warn(line_number, command, f'cannot split command line: {error}')
      return
    if tokens and tokens[0] == SWIFT_DRIVER_PREFIX:
      tokens = tokens[tokens.index('--') + 1:] if '--' in tokens else []
    if not tokens:
      self._warn(line_number, command, 'empty compiler invocation')
      return

    invocation = self._build_invocation(line_number, command, tokens)
    if invocation is not None:
      self.targets_to_commands.setdefault(invocation.target,
                                          []).append(invocation)

  def _build_invocation(self, line_number, command, tokens):
    tool = tokens[0]
    arguments = tuple(tokens[1:])
    tool_name = os.path.basename(tool)

    if tool_name in SWIFT_COMPILERS:
      if '-frontend' in arguments:
        # Frontend jobs spawned by the driver, the driver call is replayed.
        return None
      module_name = _option_value(arguments, '-module-name')
      if module_name is None:
        self._warn(line_number, command,
                   'swiftc invocation has no -module-name')
        return None
      input_files = tuple(
          argument for argument in arguments if argument.endswith('.swift'))
      language = 'swift'
    elif tool_name in CLANG_COMPILERS:
      if '-c' not in arguments:
        # Linker and driver queries also run through clang.
        return None
      language_option = _option_value(arguments, '-x')
      if language_option is not None and language_option.endswith('-header'):
        return None
      input_files = tuple(
          argument for argument in arguments
          if argument.endswith(CLANG_SOURCE_EXTENSIONS) and
          not argument.startswith('-'))
      if not input_files:
        self._warn(line_number, command, 'clang invocation has no source file')
        return None
      module_name = os.path.splitext(os.path.basename(input_files[0]))[0]
      language = 'c'
    else:
      self._warn(line_number, command, f'unrecognized compiler {tool}')
      return None

    return CompilerInvocation(
        target=self._current_target,
        tool=tool,
        working_directory=self._working_directory,
        arguments=arguments,
        module_name=module_name,
        input_files=input_files,
        language=language)

  def finish(self):
    if self._pending is not None:
      # The log ended in the middle of a continued command line.
      self._flush()
    return self.targets_to_commands

  def parse(self, lines):
    self.reset()
    for line in lines:
      self.feed(line)
    return self.finish()
