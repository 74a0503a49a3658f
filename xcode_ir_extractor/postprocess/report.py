"""Summary of one extraction run."""

import dataclasses
import json

REPORT_FILE_NAME = 'report.json'


@dataclasses.dataclass
class RunReport:
  attempted: int = 0
  succeeded: int = 0
  failures: list = dataclasses.field(default_factory=list)
  skipped: int = 0
  targets_without_artifacts: list = dataclasses.field(default_factory=list)
  unknown_targets: list = dataclasses.field(default_factory=list)
  cycles: list = dataclasses.field(default_factory=list)
  log_warnings: list = dataclasses.field(default_factory=list)
  archived_products: dict = dataclasses.field(default_factory=dict)
  interrupted: bool = False
  build_failed: bool = False

  @property
  def failed(self):
    return len(self.failures)

  def failure_fraction(self):
    if self.attempted == 0:
      return 0.0
    return self.failed / self.attempted

  def add_log_warnings(self, log_warnings):
    for log_warning in log_warnings:
      self.log_warnings.append({
          'line_number': log_warning.line_number,
          'reason': log_warning.reason,
          'line': log_warning.line
      })

  def to_dict(self):
    report = dataclasses.asdict(self)
    report['failed'] = self.failed
    return report

  def write(self, path):
    with open(path, 'w') as report_file:
      json.dump(self.to_dict(), report_file, indent=2)
