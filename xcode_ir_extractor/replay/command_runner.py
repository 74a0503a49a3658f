"""Replays captured compiler invocations to emit LLVM bitcode."""

import dataclasses
import multiprocessing
import os
import shutil
import subprocess
from typing import Optional

import ray
import ray.exceptions

from xcode_ir_extractor.replay import command_transform
from xcode_ir_extractor.replay.artifact_placement import STAGING_DIR_NAME
from xcode_ir_extractor.replay.artifact_placement import ArtifactPlacement
from xcode_ir_extractor.util.errors import NoInvocationsExecutedError

RAY_WAIT_TIMEOUT_SECONDS = 5.0


@dataclasses.dataclass(frozen=True)
class ReplayOutcome:
  success: bool
  exit_status: Optional[int] = None
  diagnostics: str = ''
  staged_outputs: tuple = ()
  launch_failed: bool = False


@dataclasses.dataclass(frozen=True)
class InvocationResult:
  invocation: object
  success: bool
  output_paths: tuple = ()
  exit_status: Optional[int] = None
  diagnostics: str = ''
  launch_failed: bool = False
  # Never started, because of fail fast or an interruption.
  skipped: bool = False


@dataclasses.dataclass
class RunResults:
  output_root: str
  results: dict
  interrupted: bool = False

  def all_results(self):
    for target_results in self.results.values():
      yield from target_results

  def artifacts_for(self, target):
    artifacts = []
    for result in self.results.get(target, []):
      if result.success:
        artifacts.extend(result.output_paths)
    return artifacts


def execute_replay(replay, timeout=None):
  """Runs one derived compiler command inside its staging directory."""
  os.makedirs(replay.staging_dir, exist_ok=True)
  for file_name, contents in replay.support_files:
    with open(os.path.join(replay.staging_dir, file_name),
              'w') as support_file:
      support_file.write(contents)
  try:
    compile_process = subprocess.run(
        replay.command_vector,
        cwd=replay.cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        timeout=timeout)
  except subprocess.TimeoutExpired as error:
    output = (error.output or b'').decode('utf-8', errors='replace')
    return ReplayOutcome(
        success=False, diagnostics=f'Timed out after {timeout}s\n{output}')
  except OSError as error:
    return ReplayOutcome(
        success=False, diagnostics=str(error), launch_failed=True)
  output = compile_process.stdout.decode('utf-8', errors='replace')
  if compile_process.returncode != 0:
    return ReplayOutcome(
        success=False,
        exit_status=compile_process.returncode,
        diagnostics=output)
  staged_outputs = tuple(
      sorted(file_name for file_name in os.listdir(replay.staging_dir)
             if file_name.endswith(command_transform.BITCODE_EXTENSION)))
  if not staged_outputs:
    return ReplayOutcome(
        success=False,
        exit_status=0,
        diagnostics='Compiler exited successfully but emitted no bitcode\n' +
        output)
  return ReplayOutcome(
      success=True,
      exit_status=0,
      diagnostics=output,
      staged_outputs=staged_outputs)


@ray.remote(num_cpus=1)
def replay_invocation(replay, timeout):
  return execute_replay(replay, timeout)


class CompilerCommandRunner:
  """Replays compiler invocations as ray tasks with bounded concurrency.

  Each replay writes into its own staging directory. Finished artifacts are
  then moved into place from the driver with os.replace, so a final path
  never holds a partially written file and the collision table is only
  touched from one thread.
  """

  def __init__(self, context, jobs=None, timeout=None, fail_fast=False):
    self.logger = context.logger
    self.jobs = jobs or multiprocessing.cpu_count()
    self.timeout = timeout
    self.fail_fast = fail_fast

  def run(self, targets_to_commands, targets_to_products, output_root):
    """Replays every invocation and places the emitted bitcode.

    Args:
      targets_to_commands: mapping from target name to CompilerInvocations.
      targets_to_products: mapping from target name to product name.
      output_root: directory artifacts are written to, one folder per target.

    Returns:
      RunResults mapping each target to its InvocationResults, in log order.

    Raises:
      NoInvocationsExecutedError: no invocation could be launched at all.
    """
    staging_root = os.path.join(output_root, STAGING_DIR_NAME)
    invocations = [
        invocation for target in targets_to_commands
        for invocation in targets_to_commands[target]
    ]
    for target in targets_to_commands:
      if target not in targets_to_products:
        self.logger.debug(f'Target {target} has no product in the project')

    replays = [
        command_transform.derive_ir_command(
            invocation, os.path.join(staging_root, str(index)))
        for index, invocation in enumerate(invocations)
    ]
    placement = ArtifactPlacement(output_root)
    planned_paths = placement.plan([
        (replay.invocation.target, replay.expected_outputs)
        for replay in replays
    ])

    results = [None] * len(replays)
    queue = list(range(len(replays)))
    pending = {}
    interrupted = False
    self.logger.info(
        f'Replaying {len(replays)} compiler invocations with {self.jobs} jobs')
    try:
      while queue or pending:
        while queue and len(pending) < self.jobs:
          index = queue.pop(0)
          pending[replay_invocation.remote(replays[index],
                                           self.timeout)] = index
        finished, _ = ray.wait(
            list(pending), num_returns=1, timeout=RAY_WAIT_TIMEOUT_SECONDS)
        for future in finished:
          index = pending.pop(future)
          try:
            outcome = ray.get(future)
          except ray.exceptions.RayError as error:
            outcome = ReplayOutcome(success=False, diagnostics=str(error))
          results[index] = self._collect(replays[index], outcome,
                                         planned_paths[index], placement)
          failed = not results[index].success
          if failed and self.fail_fast and (queue or pending):
            self.logger.warning('Stopping after the first failed invocation')
            self._cancel(pending)
            pending = {}
            queue = []
        if finished:
          self.logger.info(f'{results.count(None)} invocations left, '
                           f'{len(pending)} running')
    except KeyboardInterrupt:
      self.logger.warning('Interrupted, cancelling running invocations')
      self._cancel(pending)
      interrupted = True
    finally:
      shutil.rmtree(staging_root, ignore_errors=True)

    run_results = RunResults(
        output_root=output_root, results={}, interrupted=interrupted)
    for index, invocation in enumerate(invocations):
      result = results[index]
      if result is None:
        result = InvocationResult(
            invocation=invocation,
            success=False,
            diagnostics='Not run',
            skipped=True)
      run_results.results.setdefault(invocation.target, []).append(result)

    executed = [
        result for result in run_results.all_results() if not result.skipped
    ]
    if executed and all(result.launch_failed for result in executed):
      raise NoInvocationsExecutedError(
          'Failed to launch any compiler invocation: ' +
          executed[0].diagnostics)
    return run_results

  def _cancel(self, pending):
    for future in pending:
      ray.cancel(future, force=True)

  def _collect(self, replay, outcome, planned_paths, placement):
    invocation = replay.invocation
    if not outcome.success:
      self.logger.warning(
          f'Failed to emit bitcode for module {invocation.module_name} '
          f'of target {invocation.target}')
      return InvocationResult(
          invocation=invocation,
          success=False,
          exit_status=outcome.exit_status,
          diagnostics=outcome.diagnostics,
          launch_failed=outcome.launch_failed)
    output_paths = []
    try:
      for staged_name in outcome.staged_outputs:
        final_path = planned_paths.get(staged_name)
        if final_path is None:
          final_path = placement.reserve(invocation.target, staged_name)
        os.makedirs(os.path.dirname(final_path), exist_ok=True)
        os.replace(
            os.path.join(replay.staging_dir, staged_name), final_path)
        output_paths.append(final_path)
    except OSError as error:
      self.logger.warning(
          f'Failed to place bitcode for module {invocation.module_name} '
          f'of target {invocation.target}: {error}')
      return InvocationResult(
          invocation=invocation,
          success=False,
          output_paths=tuple(output_paths),
          exit_status=outcome.exit_status,
          diagnostics=f'{outcome.diagnostics}Failed to place bitcode: {error}')
    self.logger.debug(
        f'Emitted {len(output_paths)} bitcode files for module '
        f'{invocation.module_name} of target {invocation.target}')
    return InvocationResult(
        invocation=invocation,
        success=True,
        output_paths=tuple(output_paths),
        exit_status=outcome.exit_status,
        diagnostics=outcome.diagnostics)
