"""Rewrites captured compiler invocations so that they emit LLVM bitcode."""

import dataclasses
import json
import os
from typing import Optional

BITCODE_EXTENSION = '.bc'
OUTPUT_FILE_MAP_NAME = 'output-file-map.json'

# Flags that take a value in the following argument.
SWIFT_OPTIONS_WITH_VALUE = {
    '-o', '-output-file-map', '-emit-module-path', '-emit-objc-header-path',
    '-emit-dependencies-path', '-serialize-diagnostics-path',
    '-index-store-path', '-emit-const-values-path',
    '-emit-module-interface-path', '-emit-private-module-interface-path',
    '-emit-abi-descriptor-path', '-const-gather-protocols-file',
    '-working-directory', '-emit-module-source-info-path', '-emit-tbd-path'
}
SWIFT_FLAGS = {
    '-c', '-emit-object', '-emit-library', '-emit-executable', '-emit-module',
    '-emit-objc-header', '-emit-dependencies', '-parseable-output',
    '-use-frontend-parseable-output', '-incremental', '-emit-const-values',
    '-serialize-diagnostics', '-save-temps', '-emit-module-interface',
    '-experimental-emit-module-separately', '-no-emit-module-separately',
    '-emit-tbd'
}
SWIFT_WHOLE_MODULE_FLAGS = {'-wmo', '-whole-module-optimization'}

CLANG_OPTIONS_WITH_VALUE = {
    '-o', '-MF', '-MT', '-MQ', '--serialize-diagnostics', '-index-store-path',
    '-index-unit-output-path', '-dependency-file'
}
CLANG_FLAGS = {'-MMD', '-MD', '-M', '-MM', '-emit-llvm'}
CLANG_FLAG_PREFIXES = ('-fembed-bitcode',)


@dataclasses.dataclass(frozen=True)
class ReplayCommand:
  invocation: object
  command_vector: tuple
  cwd: Optional[str]
  staging_dir: str
  # File names the compiler is expected to write into staging_dir.
  expected_outputs: tuple
  # (file name, contents) pairs written to staging_dir before running.
  support_files: tuple = ()


def strip_arguments(arguments, options_with_value, flags, flag_prefixes=()):
  stripped = []
  skip_next = False
  for argument in arguments:
    if skip_next:
      skip_next = False
      continue
    if argument in options_with_value:
      skip_next = True
      continue
    if argument in flags or argument.startswith(flag_prefixes):
      continue
    if any(
        argument.startswith(option + '=') for option in options_with_value):
      continue
    stripped.append(argument)
  return stripped


def read_file_list(path):
  try:
    with open(path, encoding='utf-8') as file_list:
      return [line.strip() for line in file_list if line.strip()]
  except OSError:
    return []


def swift_input_files(invocation):
  """Returns the sources of a swiftc invocation.

  Sources listed in `-filelist` files and in `@` response files, as
  xcodebuild passes them, are included.
  """
  input_files = list(invocation.input_files)
  arguments = list(invocation.arguments)
  for index, argument in enumerate(arguments):
    if argument == '-filelist' and index + 1 < len(arguments):
      list_path = arguments[index + 1]
    elif argument.startswith('@'):
      list_path = argument[1:]
    else:
      continue
    listed = read_file_list(
        os.path.join(invocation.working_directory or '', list_path))
    input_files.extend(path for path in listed if path.endswith('.swift'))
  return list(dict.fromkeys(input_files))


def bitcode_name(path):
  return os.path.splitext(os.path.basename(path))[0] + BITCODE_EXTENSION


def is_whole_module(invocation):
  return bool(SWIFT_WHOLE_MODULE_FLAGS.intersection(
      invocation.arguments)) and '-num-threads' not in invocation.arguments


def swift_output_file_map(invocation, input_files, staging_dir):
  if is_whole_module(invocation):
    output_name = invocation.module_name + BITCODE_EXTENSION
    return {'': {'llvm-bc': os.path.join(staging_dir, output_name)}}
  return {
      input_file: {
          'llvm-bc': os.path.join(staging_dir, bitcode_name(input_file))
      } for input_file in input_files
  }


def derive_swift_command(invocation, staging_dir):
  input_files = swift_input_files(invocation)
  command_vector = [invocation.tool]
  command_vector.extend(
      strip_arguments(invocation.arguments, SWIFT_OPTIONS_WITH_VALUE,
                      SWIFT_FLAGS))
  command_vector.append('-emit-bc')
  if not input_files:
    # The response file holding the sources is unreadable, so let swiftc
    # name the outputs after them in the current directory.
    if invocation.working_directory is not None:
      command_vector.extend(
          ['-working-directory', invocation.working_directory])
    return ReplayCommand(
        invocation=invocation,
        command_vector=tuple(command_vector),
        cwd=staging_dir,
        staging_dir=staging_dir,
        expected_outputs=())
  output_file_map = swift_output_file_map(invocation, input_files,
                                          staging_dir)
  command_vector.extend(
      ['-output-file-map',
       os.path.join(staging_dir, OUTPUT_FILE_MAP_NAME)])
  expected = tuple(
      dict.fromkeys(
          os.path.basename(outputs['llvm-bc'])
          for outputs in output_file_map.values()))
  return ReplayCommand(
      invocation=invocation,
      command_vector=tuple(command_vector),
      cwd=invocation.working_directory,
      staging_dir=staging_dir,
      expected_outputs=expected,
      support_files=((OUTPUT_FILE_MAP_NAME,
                      json.dumps(output_file_map, indent=2)),))


def derive_clang_command(invocation, staging_dir):
  output_name = bitcode_name(invocation.input_files[0])
  command_vector = [invocation.tool]
  command_vector.extend(
      strip_arguments(invocation.arguments, CLANG_OPTIONS_WITH_VALUE,
                      CLANG_FLAGS, CLANG_FLAG_PREFIXES))
  command_vector.extend(
      ['-emit-llvm', '-o',
       os.path.join(staging_dir, output_name)])
  return ReplayCommand(
      invocation=invocation,
      command_vector=tuple(command_vector),
      cwd=invocation.working_directory,
      staging_dir=staging_dir,
      expected_outputs=(output_name,))


def derive_ir_command(invocation, staging_dir):
  """Returns a ReplayCommand emitting bitcode for `invocation`.

  The invocation itself is left untouched; all outputs of the derived
  command land in `staging_dir`.
  """
  if invocation.language == 'swift':
    return derive_swift_command(invocation, staging_dir)
  return derive_clang_command(invocation, staging_dir)
