"""Shared fixtures: a small project table, fake compilers and a ray cluster."""

import copy
import logging
import os
import stat
import textwrap

import pytest
import ray

from xcode_ir_extractor.util.context import RunContext

SAMPLE_OBJECTS = {
    'P0': {
        'isa': 'PBXProject',
        'buildConfigurationList': 'CL1',
        'mainGroup': 'G1',
        'targets': ['T_APP', 'T_CORE', 'T_AGG'],
    },
    'T_APP': {
        'isa': 'PBXNativeTarget',
        'name': 'App',
        'buildConfigurationList': 'CL1',
        'buildPhases': ['BP1'],
        'dependencies': ['D1'],
        'packageProductDependencies': ['PKG1'],
        'productName': 'App',
        'productReference': 'F_APP',
        'productType': 'com.apple.product-type.application',
    },
    'T_CORE': {
        'isa': 'PBXNativeTarget',
        'name': 'Core',
        'buildConfigurationList': 'CL1',
        'buildPhases': [],
        'dependencies': [],
        'productName': 'Core',
        'productReference': 'F_CORE',
        'productType': 'com.apple.product-type.framework',
    },
    'T_AGG': {
        'isa': 'PBXAggregateTarget',
        'name': 'Aggregate',
        'buildConfigurationList': 'CL1',
        'buildPhases': [],
        'dependencies': ['D2'],
        'productName': 'Aggregate',
    },
    'D1': {
        'isa': 'PBXTargetDependency',
        'target': 'T_CORE',
        'targetProxy': 'PX0',
    },
    'D2': {
        'isa': 'PBXTargetDependency',
        'targetProxy': 'PX1',
    },
    'PX0': {
        'isa': 'PBXContainerItemProxy',
        'containerPortal': 'P0',
        'proxyType': '1',
        'remoteGlobalIDString': 'T_CORE',
        'remoteInfo': 'Core',
    },
    'PX1': {
        'isa': 'PBXContainerItemProxy',
        'containerPortal': 'P0',
        'proxyType': '1',
        'remoteGlobalIDString': 'T_CORE',
        'remoteInfo': 'Core',
    },
    'PKG1': {
        'isa': 'XCSwiftPackageProductDependency',
        'productName': 'Alamofire',
    },
    'F_APP': {
        'isa': 'PBXFileReference',
        'explicitFileType': 'wrapper.application',
        'path': 'App.app',
        'sourceTree': 'BUILT_PRODUCTS_DIR',
    },
    'F_CORE': {
        'isa': 'PBXFileReference',
        'explicitFileType': 'wrapper.framework',
        'path': 'Core.framework',
        'sourceTree': 'BUILT_PRODUCTS_DIR',
    },
    'G1': {
        'isa': 'PBXGroup',
        'children': ['F_APP', 'F_CORE'],
        'sourceTree': '<group>',
    },
    'CL1': {
        'isa': 'XCConfigurationList',
        'buildConfigurations': ['BC1'],
        'defaultConfigurationIsVisible': '0',
        'defaultConfigurationName': 'Release',
    },
    'BC1': {
        'isa': 'XCBuildConfiguration',
        'buildSettings': {
            'SWIFT_VERSION': '5.0'
        },
        'name': 'Release',
    },
    'BP1': {
        'isa': 'PBXSourcesBuildPhase',
        'buildActionMask': '2147483647',
        'files': [],
    },
}

FAKE_CLANG = textwrap.dedent("""\
    #!/bin/sh
    out=""
    while [ $# -gt 0 ]; do
      case "$1" in
        -o) out="$2"; shift ;;
        *Broken*) echo "error: cannot compile $1" >&2; exit 1 ;;
      esac
      shift
    done
    printf 'BC' > "$out"
""")

FAKE_SWIFTC = textwrap.dedent("""\
    #!/bin/sh
    map=""
    while [ $# -gt 0 ]; do
      case "$1" in
        -output-file-map) map="$2"; shift ;;
        *Broken*) echo "error: cannot compile $1" >&2; exit 1 ;;
      esac
      shift
    done
    sed -n 's/.*"llvm-bc": "\\(.*\\)".*/\\1/p' "$map" | while read -r output; do
      printf 'BC' > "$output"
    done
""")


@pytest.fixture
def context():
  return RunContext(logger=logging.getLogger('xcode_ir_extractor.tests'))


@pytest.fixture
def verbose_context():
  return RunContext(
      logger=logging.getLogger('xcode_ir_extractor.tests'), verbose_model=True)


@pytest.fixture
def sample_objects():
  return copy.deepcopy(SAMPLE_OBJECTS)


@pytest.fixture
def sample_raw_project(sample_objects):
  return {
      'archiveVersion': '1',
      'classes': {},
      'objectVersion': '56',
      'objects': sample_objects,
      'rootObject': 'P0',
  }


def _write_executable(path, contents):
  path.write_text(contents)
  path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
  return str(path)


@pytest.fixture
def fake_toolchain(tmp_path):
  """Returns a dict with paths of fake `clang` and `swiftc` executables."""
  toolchain_dir = tmp_path / 'toolchain'
  toolchain_dir.mkdir()
  return {
      'clang': _write_executable(toolchain_dir / 'clang', FAKE_CLANG),
      'swiftc': _write_executable(toolchain_dir / 'swiftc', FAKE_SWIFTC),
  }


@pytest.fixture(scope='session')
def ray_cluster():
  ray.init(num_cpus=2, include_dashboard=False, ignore_reinit_error=True)
  yield
  ray.shutdown()


def pytest_configure(config):
  # Ray workers inherit the environment, make the package importable there.
  root = os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
  os.environ['PYTHONPATH'] = os.pathsep.join(
      path for path in [root, os.environ.get('PYTHONPATH')] if path)
