"""Verifies emitted bitcode and arranges it per product in the archive."""

import os
import shutil

from xcode_ir_extractor.postprocess.report import RunReport
from xcode_ir_extractor.project import pbxproj_objects


class OutputPostprocessor:
  """Final placement and verification pass over the replayed invocations.

  Every native target with a product gets a folder named after the product
  in the archive, holding the bitcode of the target and of everything it
  transitively depends on. Artifacts keep the per-target relative paths the
  runner gave them, so nothing is renamed here.
  """

  def __init__(self, context):
    self.logger = context.logger

  def _count_results(self, run_results, report):
    for result in run_results.all_results():
      if result.skipped:
        report.skipped += 1
        continue
      report.attempted += 1
      if result.success:
        report.succeeded += 1
        continue
      invocation = result.invocation
      report.failures.append({
          'target': invocation.target,
          'module': invocation.module_name,
          'input_files': list(invocation.input_files),
          'exit_status': result.exit_status,
          'launch_failed': result.launch_failed,
          'diagnostics': result.diagnostics
      })

  def _archive_product(self, product_dir, members, run_results):
    copied = 0
    for member in members:
      for artifact_path in run_results.artifacts_for(member):
        relative_path = os.path.relpath(artifact_path, run_results.output_root)
        destination = os.path.join(product_dir, relative_path)
        os.makedirs(os.path.dirname(destination), exist_ok=True)
        shutil.copy2(artifact_path, destination)
        copied += 1
    return copied

  def process(self, project, resolver, run_results, archive_root,
              log_parser=None):
    """Builds the archive layout and the run report.

    Args:
      project: the ProjectModel or ProjectCollection of the build.
      resolver: DependencyResolver over the same project, providing the
        dependency graph.
      run_results: RunResults from the CompilerCommandRunner.
      archive_root: directory receiving one folder per product.
      log_parser: optional XcodeLogParser whose warnings are reported.

    Returns:
      A RunReport.
    """
    report = RunReport(interrupted=run_results.interrupted)
    if log_parser is not None:
      report.add_log_warnings(log_parser.warnings)
      report.build_failed = log_parser.build_failed
    self._count_results(run_results, report)

    graph = resolver.dependency_graph()
    known_names = {target.name for target in project.targets()}
    known_names.update(resolver.package_product_names())
    report.unknown_targets = sorted(
        target for target in run_results.results if target not in known_names)
    for target in report.unknown_targets:
      self.logger.warning(
          f'Target {target} from the build log is not part of the project')

    seen_cycles = set()
    for target in project.targets():
      if not isinstance(target, pbxproj_objects.PBXNativeTarget):
        continue
      product_name = project.product_name(target)
      if product_name is None:
        continue
      if not run_results.artifacts_for(target.name):
        self.logger.warning(
            f'No bitcode was emitted for target {target.name} ({product_name})')
        report.targets_without_artifacts.append(target.name)

      walk = resolver.walk(target.name, graph)
      for cycle_error in walk.cycles:
        cycle_key = frozenset(cycle_error.cycle)
        if cycle_key not in seen_cycles:
          seen_cycles.add(cycle_key)
          self.logger.warning(str(cycle_error))
          report.cycles.append(cycle_error.cycle)

      members = [target.name] + walk.dependencies
      copied = self._archive_product(
          os.path.join(archive_root, product_name), members, run_results)
      report.archived_products[product_name] = copied
      self.logger.debug(f'Archived {copied} bitcode files for {product_name}')

    self.logger.info(
        f'{report.succeeded} of {report.attempted} invocations succeeded, '
        f'{report.failed} failed, {report.skipped} skipped')
    return report
