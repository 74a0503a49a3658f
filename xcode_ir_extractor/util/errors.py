"""Errors raised while extracting IR from an Xcode build."""


class DecodeError(ValueError):
  """A record in the project file is missing a field or has the wrong type."""

  def __init__(self, identifier, field, message):
    self.identifier = identifier
    self.field = field
    super().__init__(f'Failed to decode object {identifier} '
                     f'(field {field}): {message}')


class UnresolvedReferenceError(ValueError):

  def __init__(self, owner, reference, message=None):
    self.owner = owner
    self.reference = reference
    if message is None:
      message = f'{owner} references {reference}, which does not exist'
    super().__init__(message)


class UnresolvedDependencyError(UnresolvedReferenceError):

  def __init__(self, target_name, reference):
    super().__init__(
        target_name, reference,
        f'Target {target_name} depends on {reference}, which is neither a '
        'native target nor a package product')


class CycleError(ValueError):
  """A dependency walk came back to a target already on its path."""

  def __init__(self, cycle):
    self.cycle = list(cycle)
    super().__init__('Dependency cycle: ' + ' -> '.join(self.cycle))


class ProjectLoadError(OSError):

  def __init__(self, path, cause):
    self.path = path
    self.cause = cause
    super().__init__(f'Failed to load project at {path}: {cause}')


class NoInvocationsExecutedError(RuntimeError):
  """Raised when not a single compiler invocation could be launched."""


class LogReadError(OSError):

  def __init__(self, path, cause):
    self.path = path
    self.cause = cause
    super().__init__(f'Failed to read build log {path}: {cause}')
