"""Resolved view of a decoded pbxproj objects table."""

from xcode_ir_extractor.project import pbxproj_objects
from xcode_ir_extractor.util.errors import UnresolvedReferenceError


class ProjectModel:
  """Resolves identifier references in a decoded object table.

  References are resolved eagerly at construction, so a dangling reference on
  any target, product or configuration list surfaces immediately.
  """

  def __init__(self, objects, root_object_id, context, path=None):
    self.objects = objects
    self.path = path
    self.logger = context.logger
    self.project = self.object(root_object_id, pbxproj_objects.PBXProject,
                               'rootObject')
    self._targets = [
        self.object(target_id, pbxproj_objects.TARGET_TYPES,
                    self.project.identifier)
        for target_id in self.project.targets
    ]
    self._targets_by_name = {}
    for target in self._targets:
      if target.name in self._targets_by_name:
        self.logger.warning(
            f'Target name {target.name} appears more than once in {path}')
        continue
      self._targets_by_name[target.name] = target
    self._products = {}
    for target in self._targets:
      if isinstance(target, pbxproj_objects.PBXNativeTarget
                   ) and target.product_reference is not None:
        self._products[target.identifier] = self.object(
            target.product_reference, pbxproj_objects.PBXFileReference,
            target.name)
    self._configuration_lists = {}
    for owner in [self.project] + self._targets:
      if owner.build_configuration_list is not None:
        self._configuration_lists[owner.identifier] = self.object(
            owner.build_configuration_list,
            pbxproj_objects.XCConfigurationList, owner.identifier)

  def object(self, identifier, expected_type=pbxproj_objects.PBXObject,
             owner=None):
    resolved = self.objects.get(identifier)
    if resolved is None:
      raise UnresolvedReferenceError(owner, identifier)
    if not isinstance(resolved, expected_type):
      raise UnresolvedReferenceError(
          owner, identifier,
          f'{owner} references {identifier}, which is a {resolved.isa}')
    return resolved

  def targets(self):
    return list(self._targets)

  def target(self, name):
    return self._targets_by_name.get(name)

  def target_by_id(self, identifier):
    resolved = self.objects.get(identifier)
    if isinstance(resolved, pbxproj_objects.TARGET_TYPES):
      return resolved
    return None

  def product_name(self, target):
    """Returns the file name of the target's product, e.g. `MyApp.app`.

    Aggregate and legacy targets, and native targets without a product
    reference, have no product and return None.
    """
    product = self._products.get(target.identifier)
    if product is None:
      return None
    return product.path or product.name

  def targets_to_products(self):
    targets_to_products = {}
    for target in self._targets:
      product_name = self.product_name(target)
      if product_name is not None:
        targets_to_products[target.name] = product_name
    return targets_to_products

  def configuration_list(self, owner):
    return self._configuration_lists.get(owner.identifier)

  def objects_of_type(self, object_type):
    return [
        candidate for candidate in self.objects.values()
        if isinstance(candidate, object_type)
    ]


class ProjectCollection:
  """Several projects from one workspace, searched in workspace order."""

  def __init__(self, projects):
    self.projects = list(projects)

  def targets(self):
    targets = []
    for project in self.projects:
      targets.extend(project.targets())
    return targets

  def target(self, name):
    for project in self.projects:
      target = project.target(name)
      if target is not None:
        return target
    return None

  def project_for(self, target):
    for project in self.projects:
      if project.objects.get(target.identifier) is target:
        return project
    return None

  def product_name(self, target):
    project = self.project_for(target)
    if project is None:
      return None
    return project.product_name(target)

  def targets_to_products(self):
    targets_to_products = {}
    for project in reversed(self.projects):
      targets_to_products.update(project.targets_to_products())
    return targets_to_products
