"""Assigns every emitted bitcode file a unique path under the output root."""

import os

# Scratch space of the runner inside the output root.
STAGING_DIR_NAME = '.staging'


def target_directory_name(target):
  """Returns a single path component for `target`."""
  name = target.replace(os.sep, '_')
  if os.altsep:
    name = name.replace(os.altsep, '_')
  if name in (STAGING_DIR_NAME, os.curdir, os.pardir, ''):
    name = '_' + name
  return name


class ArtifactPlacement:
  """Collision table mapping (target, artifact name) to a final path.

  Artifacts live in `<output_root>/<target>/<name>.bc`. When the same
  artifact name is claimed by several targets, every claimant is qualified
  as `<target>-<name>.bc`; a name repeated within one target gets a numeric
  suffix. The table only lives in the driver process.
  """

  def __init__(self, output_root):
    self.output_root = output_root
    self._claims = {}
    self._taken = set()

  def plan(self, planned_artifacts):
    """Reserves paths for artifacts known before running anything.

    Args:
      planned_artifacts: list of (target, [artifact names]) pairs, in log
        order.

    Returns:
      A list with one {artifact name: final path} dict per input pair.
    """
    for target, artifact_names in planned_artifacts:
      for artifact_name in artifact_names:
        self._claims.setdefault(artifact_name, set()).add(target)
    return [{
        artifact_name: self.reserve(target, artifact_name)
        for artifact_name in artifact_names
    } for target, artifact_names in planned_artifacts]

  def reserve(self, target, artifact_name):
    claimants = self._claims.setdefault(artifact_name, set())
    claimants.add(target)
    stem, extension = os.path.splitext(artifact_name)
    target_name = target_directory_name(target)
    if len(claimants) > 1:
      stem = f'{target_name}-{stem}'
    directory = os.path.join(self.output_root, target_name)
    path = os.path.join(directory, stem + extension)
    suffix = 1
    while path in self._taken:
      path = os.path.join(directory, f'{stem}-{suffix}{extension}')
      suffix += 1
    self._taken.add(path)
    return path
