"""Tests for decoding the pbxproj objects table."""

import pytest

from xcode_ir_extractor.project import pbxproj_objects
from xcode_ir_extractor.util.errors import DecodeError


class TestDecodeObjects:

  def test_every_record_is_decoded(self, sample_objects):
    objects = pbxproj_objects.decode_objects(sample_objects)
    assert set(objects) == set(sample_objects)

  def test_unknown_kinds_keep_identity_only(self, sample_objects):
    objects = pbxproj_objects.decode_objects(sample_objects)
    build_phase = objects['BP1']
    assert type(build_phase) is pbxproj_objects.PBXObject
    assert build_phase == pbxproj_objects.PBXObject(
        identifier='BP1', isa='PBXSourcesBuildPhase')

  def test_known_and_unknown_counts(self):
    raw_objects = {
        'A': {
            'isa': 'PBXFileReference',
            'path': 'a.swift'
        },
        'B': {
            'isa': 'PBXTargetDependency',
            'target': 'X'
        },
        'C': {
            'isa': 'PBXBuildFile',
            'fileRef': 'A'
        },
        'D': {
            'isa': 'PBXFrameworksBuildPhase'
        },
        'E': {
            'isa': 'PBXShellScriptBuildPhase',
            'shellScript': 'true'
        },
    }
    objects = pbxproj_objects.decode_objects(raw_objects)
    assert len(objects) == 5
    unknown = [
        decoded for decoded in objects.values()
        if type(decoded) is pbxproj_objects.PBXObject
    ]
    assert sorted(decoded.identifier for decoded in unknown) == ['C', 'D', 'E']

  def test_targets_are_typed(self, sample_objects):
    objects = pbxproj_objects.decode_objects(sample_objects)
    assert isinstance(objects['T_APP'], pbxproj_objects.PBXNativeTarget)
    assert isinstance(objects['T_AGG'], pbxproj_objects.PBXAggregateTarget)
    assert objects['T_APP'].name == 'App'
    assert objects['T_APP'].dependencies == ('D1',)
    assert objects['T_APP'].product_reference == 'F_APP'
    assert objects['T_APP'].package_product_dependencies == ('PKG1',)

  def test_references_stay_identifiers(self, sample_objects):
    objects = pbxproj_objects.decode_objects(sample_objects)
    assert objects['D1'].target == 'T_CORE'
    assert objects['PX1'].remote_global_id == 'T_CORE'

  def test_optional_fields_absent(self):
    objects = pbxproj_objects.decode_objects({
        'T': {
            'isa': 'PBXNativeTarget',
            'name': 'Tests',
            'dependencies': []
        }
    })
    target = objects['T']
    assert target.product_reference is None
    assert target.package_product_dependencies == ()

  def test_legacy_target(self):
    objects = pbxproj_objects.decode_objects({
        'L': {
            'isa': 'PBXLegacyTarget',
            'name': 'Make',
            'dependencies': []
        }
    })
    assert isinstance(objects['L'], pbxproj_objects.PBXLegacyTarget)


class TestDecodeErrors:

  def test_missing_required_field(self, sample_objects):
    del sample_objects['T_CORE']['name']
    with pytest.raises(DecodeError) as error:
      pbxproj_objects.decode_objects(sample_objects)
    assert error.value.identifier == 'T_CORE'
    assert error.value.field == 'name'

  def test_malformed_field(self, sample_objects):
    sample_objects['T_APP']['dependencies'] = 'D1'
    with pytest.raises(DecodeError) as error:
      pbxproj_objects.decode_objects(sample_objects)
    assert error.value.identifier == 'T_APP'
    assert error.value.field == 'dependencies'

  def test_aggregate_requires_build_phases(self, sample_objects):
    del sample_objects['T_AGG']['buildPhases']
    with pytest.raises(DecodeError, match='T_AGG'):
      pbxproj_objects.decode_objects(sample_objects)

  def test_missing_isa(self):
    with pytest.raises(DecodeError) as error:
      pbxproj_objects.decode_objects({'Z': {'name': 'nothing'}})
    assert error.value.field == 'isa'

  def test_record_not_a_dictionary(self):
    with pytest.raises(DecodeError, match='Z'):
      pbxproj_objects.decode_objects({'Z': ['not', 'a', 'record']})


class TestVerboseModel:

  def test_diagnostic_fields_skipped_by_default(self, sample_objects):
    objects = pbxproj_objects.decode_objects(sample_objects)
    assert objects['T_APP'].product_type is None
    assert objects['T_APP'].build_configuration_list is None
    assert objects['BC1'].build_settings is None
    assert objects['CL1'].build_configurations is None

  def test_diagnostic_fields_populated(self, sample_objects):
    objects = pbxproj_objects.decode_objects(
        sample_objects, verbose_model=True)
    assert objects['T_APP'].product_type == (
        'com.apple.product-type.application')
    assert objects['T_APP'].build_phases == ('BP1',)
    assert objects['T_APP'].build_configuration_list == 'CL1'
    assert objects['BC1'].build_settings == {'SWIFT_VERSION': '5.0'}
    assert objects['BC1'].name == 'Release'
    assert objects['CL1'].default_configuration_name == 'Release'

  def test_both_modes_decode_same_identifiers(self, sample_objects):
    plain = pbxproj_objects.decode_objects(sample_objects)
    verbose = pbxproj_objects.decode_objects(sample_objects, verbose_model=True)
    assert set(plain) == set(verbose)
    for identifier in plain:
      assert type(plain[identifier]) is type(verbose[identifier])
