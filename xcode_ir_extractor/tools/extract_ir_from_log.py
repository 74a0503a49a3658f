"""Tool that replays the compiler invocations of an xcodebuild log to emit
LLVM bitcode into an xcarchive.

Example:
  xcodebuild clean && xcodebuild archive -project MyApp.xcodeproj \
    -scheme MyApp -archivePath MyApp.xcarchive > build.log
  python3 -m xcode_ir_extractor.tools.extract_ir_from_log \
    --log_path=build.log --archive_path=MyApp.xcarchive \
    --project_path=MyApp.xcodeproj

Use --log_path=- to pipe the build log in on stdin.
"""

import logging
import multiprocessing
import os

from absl import app
from absl import flags

import ray

from xcode_ir_extractor.log.log_parser import XcodeLogParser
from xcode_ir_extractor.log.log_reader import read_log_lines
from xcode_ir_extractor.postprocess.output_postprocessor import OutputPostprocessor
from xcode_ir_extractor.postprocess.report import REPORT_FILE_NAME
from xcode_ir_extractor.project.dependency_resolver import DependencyResolver
from xcode_ir_extractor.project.project_loader import load_project
from xcode_ir_extractor.replay.command_runner import CompilerCommandRunner
from xcode_ir_extractor.util import context as run_context

FLAGS = flags.FLAGS

flags.DEFINE_string(
    'log_path', None,
    'Path to a full xcodebuild log, or - to read the log from stdin.')
flags.DEFINE_string('archive_path', None,
                    'Path to the xcarchive the bitcode is written into.')
flags.DEFINE_string('project_path', None,
                    'Path to the xcodeproj or xcworkspace that was built.')
flags.DEFINE_integer('jobs', multiprocessing.cpu_count(),
                     'The number of compiler invocations to run at once.')
flags.DEFINE_integer(
    'timeout', None,
    'Seconds a single compiler invocation may run before it is killed.')
flags.DEFINE_bool('fail_fast', False,
                  'Stop replaying after the first failed invocation.')
flags.DEFINE_float(
    'max_failure_fraction', 1.0,
    'Exit with an error when a larger fraction of invocations fails.')
flags.DEFINE_bool('verbose_model', False,
                  'Decode diagnostic-only fields of the project file.')
flags.DEFINE_bool('quieter', False,
                  'Do not echo the build log when it is read from stdin.')
flags.DEFINE_bool('debug', False, 'Enables debug level logging.')

flags.mark_flag_as_required('log_path')
flags.mark_flag_as_required('archive_path')
flags.mark_flag_as_required('project_path')

IR_FOLDER_NAME = 'IR'
TARGETS_FOLDER_NAME = 'targets'


def normalize_archive_path(archive_path):
  archive_path = archive_path.rstrip(os.sep)
  # The IR folder inside the archive used to be passed directly.
  if os.path.basename(archive_path) == IR_FOLDER_NAME:
    archive_path = os.path.dirname(archive_path)
  return archive_path


flags.register_validator(
    'archive_path',
    lambda path: path is None or normalize_archive_path(path).endswith(
        '.xcarchive'),
    message='--archive_path must have an .xcarchive extension.')
flags.register_validator(
    'max_failure_fraction',
    lambda fraction: 0.0 <= fraction <= 1.0,
    message='--max_failure_fraction must be between 0 and 1.')


def main(_):
  context = run_context.create_context(verbose_model=FLAGS.verbose_model)
  context.logger.setLevel(logging.DEBUG if FLAGS.debug else logging.INFO)

  archive_path = normalize_archive_path(FLAGS.archive_path)
  ir_dir = os.path.join(archive_path, IR_FOLDER_NAME)
  targets_dir = os.path.join(ir_dir, TARGETS_FOLDER_NAME)
  os.makedirs(targets_dir, exist_ok=True)

  project = load_project(FLAGS.project_path, context)
  resolver = DependencyResolver(project)
  # Resolve every dependency up front so dangling references stop the run
  # before anything is replayed.
  resolver.dependency_graph()

  if FLAGS.log_path == '-':
    context.logger.info('Collating input via pipe')
  log_parser = XcodeLogParser(context)
  targets_to_commands = log_parser.parse(
      read_log_lines(FLAGS.log_path, echo=not FLAGS.quieter))
  context.logger.info(
      f'Found {sum(len(commands) for commands in targets_to_commands.values())}'
      f' compiler invocations in {len(targets_to_commands)} targets')
  if log_parser.build_failed:
    context.logger.warning('The build log reports a failed build, some '
                           'modules may be missing')

  ray.init(num_cpus=FLAGS.jobs)
  runner = CompilerCommandRunner(
      context,
      jobs=FLAGS.jobs,
      timeout=FLAGS.timeout,
      fail_fast=FLAGS.fail_fast)
  run_results = runner.run(targets_to_commands, project.targets_to_products(),
                           targets_dir)

  postprocessor = OutputPostprocessor(context)
  report = postprocessor.process(
      project, resolver, run_results, ir_dir, log_parser=log_parser)
  report_path = os.path.join(ir_dir, REPORT_FILE_NAME)
  report.write(report_path)
  context.logger.info(f'Wrote report to {report_path}')

  if report.interrupted:
    return 1
  if report.failure_fraction() > FLAGS.max_failure_fraction:
    context.logger.error(
        f'{report.failed} of {report.attempted} invocations failed')
    return 1
  return 0


def run():
  app.run(main)


if __name__ == '__main__':
  run()
