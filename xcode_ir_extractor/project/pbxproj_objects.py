"""Typed views of the records stored in the objects table of a pbxproj file.

Decoding is purely structural: identifier valued fields are kept as strings
and only resolved once the whole table has been decoded (see
project_model.py), as the table is full of forward and circular references.
"""

import dataclasses
from typing import Optional

from xcode_ir_extractor.util.errors import DecodeError


@dataclasses.dataclass(frozen=True)
class PBXObject:
  identifier: str
  isa: str


@dataclasses.dataclass(frozen=True)
class PBXProject(PBXObject):
  targets: tuple
  build_configuration_list: Optional[str] = None
  main_group: Optional[str] = None
  product_ref_group: Optional[str] = None
  project_dir_path: Optional[str] = None
  project_root: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class PBXTarget(PBXObject):
  name: str
  dependencies: tuple
  # Only populated with a verbose model.
  build_configuration_list: Optional[str] = None
  product_name: Optional[str] = None
  comments: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class PBXAggregateTarget(PBXTarget):
  build_phases: tuple = ()


@dataclasses.dataclass(frozen=True)
class PBXLegacyTarget(PBXTarget):
  pass


@dataclasses.dataclass(frozen=True)
class PBXNativeTarget(PBXTarget):
  product_reference: Optional[str] = None
  package_product_dependencies: tuple = ()
  # Only populated with a verbose model.
  build_phases: Optional[tuple] = None
  product_type: Optional[str] = None
  product_install_path: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class PBXTargetDependency(PBXObject):
  target: Optional[str] = None
  target_proxy: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class PBXContainerItemProxy(PBXObject):
  container_portal: Optional[str] = None
  proxy_type: Optional[str] = None
  remote_global_id: Optional[str] = None
  remote_info: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class XCSwiftPackageProductDependency(PBXObject):
  product_name: str
  package: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class PBXFileReference(PBXObject):
  path: Optional[str] = None
  name: Optional[str] = None
  explicit_file_type: Optional[str] = None
  source_tree: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class PBXGroup(PBXObject):
  children: tuple = ()
  name: Optional[str] = None
  path: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class PBXVariantGroup(PBXObject):
  # Only populated with a verbose model.
  children: Optional[tuple] = None
  name: Optional[str] = None
  source_tree: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class XCBuildConfiguration(PBXObject):
  # Only populated with a verbose model.
  name: Optional[str] = None
  build_settings: Optional[dict] = None
  base_configuration_reference: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class XCConfigurationList(PBXObject):
  # Only populated with a verbose model.
  build_configurations: Optional[tuple] = None
  default_configuration_is_visible: Optional[str] = None
  default_configuration_name: Optional[str] = None


TARGET_TYPES = (PBXNativeTarget, PBXAggregateTarget, PBXLegacyTarget)


class _Fields:
  """Typed accessors over one raw record, failing with the record's id."""

  def __init__(self, identifier, record):
    self.identifier = identifier
    self.record = record

  def _check(self, field, value, expected_type):
    if expected_type is list:
      if not isinstance(value, (list, tuple)) or not all(
          isinstance(item, str) for item in value):
        raise DecodeError(self.identifier, field, 'expected a list of strings')
      return tuple(value)
    if not isinstance(value, expected_type):
      raise DecodeError(self.identifier, field,
                        f'expected {expected_type.__name__}, '
                        f'found {type(value).__name__}')
    return value

  def required(self, field, expected_type=str):
    if field not in self.record:
      raise DecodeError(self.identifier, field, 'missing required field')
    return self._check(field, self.record[field], expected_type)

  def optional(self, field, expected_type=str, default=None):
    if self.record.get(field) is None:
      return default
    return self._check(field, self.record[field], expected_type)


def _target_fields(fields, verbose_model):
  decoded = {
      'name': fields.required('name'),
      'dependencies': fields.required('dependencies', list),
  }
  if verbose_model:
    decoded['build_configuration_list'] = fields.optional(
        'buildConfigurationList')
    decoded['product_name'] = fields.optional('productName')
    decoded['comments'] = fields.optional('comments')
  return decoded


def _decode_project(base, fields, verbose_model):
  return PBXProject(
      **base,
      targets=fields.required('targets', list),
      build_configuration_list=fields.optional('buildConfigurationList'),
      main_group=fields.optional('mainGroup'),
      product_ref_group=fields.optional('productRefGroup'),
      project_dir_path=fields.optional('projectDirPath'),
      project_root=fields.optional('projectRoot'))


def _decode_native_target(base, fields, verbose_model):
  extra = {}
  if verbose_model:
    extra['build_phases'] = fields.optional('buildPhases', list, ())
    extra['product_type'] = fields.optional('productType')
    extra['product_install_path'] = fields.optional('productInstallPath')
  return PBXNativeTarget(
      **base,
      **_target_fields(fields, verbose_model),
      product_reference=fields.optional('productReference'),
      package_product_dependencies=fields.optional('packageProductDependencies',
                                                   list, ()),
      **extra)


def _decode_aggregate_target(base, fields, verbose_model):
  return PBXAggregateTarget(
      **base,
      **_target_fields(fields, verbose_model),
      build_phases=fields.required('buildPhases', list))


def _decode_legacy_target(base, fields, verbose_model):
  return PBXLegacyTarget(**base, **_target_fields(fields, verbose_model))


def _decode_target_dependency(base, fields, verbose_model):
  return PBXTargetDependency(
      **base,
      target=fields.optional('target'),
      target_proxy=fields.optional('targetProxy'))


def _decode_container_item_proxy(base, fields, verbose_model):
  return PBXContainerItemProxy(
      **base,
      container_portal=fields.optional('containerPortal'),
      proxy_type=fields.optional('proxyType'),
      remote_global_id=fields.optional('remoteGlobalIDString'),
      remote_info=fields.optional('remoteInfo'))


def _decode_package_product_dependency(base, fields, verbose_model):
  return XCSwiftPackageProductDependency(
      **base,
      product_name=fields.required('productName'),
      package=fields.optional('package'))


def _decode_file_reference(base, fields, verbose_model):
  return PBXFileReference(
      **base,
      path=fields.optional('path'),
      name=fields.optional('name'),
      explicit_file_type=fields.optional('explicitFileType'),
      source_tree=fields.optional('sourceTree'))


def _decode_group(base, fields, verbose_model):
  return PBXGroup(
      **base,
      children=fields.optional('children', list, ()),
      name=fields.optional('name'),
      path=fields.optional('path'))


def _decode_variant_group(base, fields, verbose_model):
  if not verbose_model:
    return PBXVariantGroup(**base)
  return PBXVariantGroup(
      **base,
      children=fields.required('children', list),
      name=fields.required('name'),
      source_tree=fields.required('sourceTree'))


def _decode_build_configuration(base, fields, verbose_model):
  if not verbose_model:
    return XCBuildConfiguration(**base)
  return XCBuildConfiguration(
      **base,
      name=fields.required('name'),
      build_settings=fields.required('buildSettings', dict),
      base_configuration_reference=fields.optional(
          'baseConfigurationReference'))


def _decode_configuration_list(base, fields, verbose_model):
  if not verbose_model:
    return XCConfigurationList(**base)
  return XCConfigurationList(
      **base,
      build_configurations=fields.required('buildConfigurations', list),
      default_configuration_is_visible=fields.optional(
          'defaultConfigurationIsVisible'),
      default_configuration_name=fields.optional('defaultConfigurationName'))


OBJECT_DECODERS = {
    'PBXProject': _decode_project,
    'PBXNativeTarget': _decode_native_target,
    'PBXAggregateTarget': _decode_aggregate_target,
    'PBXLegacyTarget': _decode_legacy_target,
    'PBXTargetDependency': _decode_target_dependency,
    'PBXContainerItemProxy': _decode_container_item_proxy,
    'XCSwiftPackageProductDependency': _decode_package_product_dependency,
    'PBXFileReference': _decode_file_reference,
    'PBXGroup': _decode_group,
    'PBXVariantGroup': _decode_variant_group,
    'XCBuildConfiguration': _decode_build_configuration,
    'XCConfigurationList': _decode_configuration_list,
}


def decode_object(identifier, record, verbose_model=False):
  if not isinstance(record, dict):
    raise DecodeError(identifier, 'isa', 'record is not a dictionary')
  isa = record.get('isa')
  if not isinstance(isa, str):
    raise DecodeError(identifier, 'isa', 'missing object kind')
  base = {'identifier': identifier, 'isa': isa}
  decoder = OBJECT_DECODERS.get(isa)
  if decoder is None:
    # Most object kinds are irrelevant to us, keep just the identity.
    return PBXObject(**base)
  return decoder(base, _Fields(identifier, record), verbose_model)


def decode_objects(raw_objects, verbose_model=False):
  """Decodes the flat objects table of a pbxproj file.

  Args:
    raw_objects: mapping from identifier to the untyped record.
    verbose_model: whether to populate diagnostic-only fields.

  Returns:
    A dict from identifier to decoded object, with one entry per record.

  Raises:
    DecodeError: a recognized record is missing a required field.
  """
  return {
      identifier: decode_object(identifier, record, verbose_model)
      for identifier, record in raw_objects.items()
  }
