"""Builds the target dependency graph of one or more projects."""

import dataclasses
from typing import Optional

from xcode_ir_extractor.project import pbxproj_objects
from xcode_ir_extractor.util.errors import CycleError
from xcode_ir_extractor.util.errors import UnresolvedDependencyError

NATIVE_DEPENDENCY = 'native'
PACKAGE_DEPENDENCY = 'package'


@dataclasses.dataclass(frozen=True)
class TargetDependency:
  kind: str
  name: str
  target: Optional[pbxproj_objects.PBXNativeTarget] = None
  package_product: Optional[
      pbxproj_objects.XCSwiftPackageProductDependency] = None

  @classmethod
  def native(cls, target):
    return cls(kind=NATIVE_DEPENDENCY, name=target.name, target=target)

  @classmethod
  def package(cls, package_product):
    return cls(
        kind=PACKAGE_DEPENDENCY,
        name=package_product.product_name,
        package_product=package_product)


@dataclasses.dataclass
class DependencyWalk:
  dependencies: list
  cycles: list


class DependencyResolver:
  """Resolves the direct dependencies of targets.

  Every target's dependency list is resolved in a single pass, without
  recursing into the dependencies themselves, so cyclic projects terminate.
  """

  def __init__(self, project):
    # Accept a single ProjectModel as well as a ProjectCollection.
    self.projects = getattr(project, 'projects', [project])
    self._resolved = {}

  def _owning_project(self, target):
    for project in self.projects:
      if project.objects.get(target.identifier) is target:
        return project
    return self.projects[0]

  def _lookup(self, project, identifier):
    found = project.objects.get(identifier)
    if found is not None:
      return found
    # Proxies may point into another project of the same workspace.
    for other_project in self.projects:
      found = other_project.objects.get(identifier)
      if found is not None:
        return found
    return None

  def _resolve_identifier(self, project, target, identifier):
    resolved = project.objects.get(identifier)
    if isinstance(resolved, pbxproj_objects.PBXTargetDependency):
      if resolved.target is not None:
        resolved = self._lookup(project, resolved.target)
      elif resolved.target_proxy is not None:
        proxy = project.objects.get(resolved.target_proxy)
        if isinstance(proxy, pbxproj_objects.PBXContainerItemProxy
                     ) and proxy.remote_global_id is not None:
          resolved = self._lookup(project, proxy.remote_global_id)
        else:
          resolved = None
      else:
        resolved = None
    if isinstance(resolved, pbxproj_objects.PBXNativeTarget):
      return TargetDependency.native(resolved)
    if isinstance(resolved, pbxproj_objects.XCSwiftPackageProductDependency):
      return TargetDependency.package(resolved)
    if isinstance(resolved, pbxproj_objects.TARGET_TYPES):
      # Aggregate and legacy targets build no modules of their own.
      project.logger.warning(
          f'Ignoring dependency of {target.name} on {resolved.isa} '
          f'{resolved.name}')
      return None
    raise UnresolvedDependencyError(target.name, identifier)

  def resolve(self, target):
    """Returns the set of TargetDependency of a target.

    Raises:
      UnresolvedDependencyError: a dependency identifier resolves to neither
        a target nor a package product. Dependencies on aggregate and
        legacy targets are logged and left out.
    """
    if target.identifier in self._resolved:
      return self._resolved[target.identifier]
    project = self._owning_project(target)
    identifiers = list(target.dependencies)
    if isinstance(target, pbxproj_objects.PBXNativeTarget):
      identifiers.extend(target.package_product_dependencies)
    resolved = (
        self._resolve_identifier(project, target, identifier)
        for identifier in identifiers)
    dependencies = frozenset(
        dependency for dependency in resolved if dependency is not None)
    self._resolved[target.identifier] = dependencies
    return dependencies

  def targets(self):
    targets = []
    for project in self.projects:
      targets.extend(project.targets())
    return targets

  def dependency_graph(self):
    graph = {}
    for target in self.targets():
      names = {dependency.name for dependency in self.resolve(target)}
      graph.setdefault(target.name, set()).update(names)
    return graph

  def package_product_names(self):
    names = set()
    for project in self.projects:
      for package_product in project.objects_of_type(
          pbxproj_objects.XCSwiftPackageProductDependency):
        names.add(package_product.product_name)
    return names

  def walk(self, name, graph=None):
    """Collects the transitive dependencies of the target called `name`.

    The walk keeps a visited set and the current path, so a cycle is
    recorded as a CycleError instead of being followed.
    """
    if graph is None:
      graph = self.dependency_graph()
    visited = set()
    order = []
    cycles = []

    def visit(node, path):
      for dependency in sorted(graph.get(node, ())):
        if dependency in path:
          cycle = path[path.index(dependency):] + [dependency]
          cycles.append(CycleError(cycle))
          continue
        if dependency in visited:
          continue
        visited.add(dependency)
        order.append(dependency)
        visit(dependency, path + [dependency])

    visit(name, [name])
    return DependencyWalk(dependencies=order, cycles=cycles)
