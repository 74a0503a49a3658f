"""Tests for deriving bitcode emitting compiler commands."""

import json
import os

from xcode_ir_extractor.log.log_parser import CompilerInvocation
from xcode_ir_extractor.replay import command_transform


def swift_invocation(arguments, working_directory='/src'):
  return CompilerInvocation(
      target='App',
      tool='/usr/bin/swiftc',
      working_directory=working_directory,
      arguments=tuple(arguments),
      module_name='App',
      input_files=tuple(
          argument for argument in arguments if argument.endswith('.swift')),
      language='swift')


def clang_invocation(arguments, working_directory='/src'):
  return CompilerInvocation(
      target='Core',
      tool='/usr/bin/clang',
      working_directory=working_directory,
      arguments=tuple(arguments),
      module_name='Utils',
      input_files=('/src/Utils.m',),
      language='c')


class TestSwiftCommands:

  def test_output_flags_are_replaced(self):
    invocation = swift_invocation([
        '-incremental', '-module-name', 'App', '/src/A.swift', '/src/B.swift',
        '-emit-module', '-emit-module-path', '/tmp/App.swiftmodule',
        '-emit-objc-header-path', '/tmp/App-Swift.h', '-parseable-output',
        '-output-file-map', '/tmp/map.json', '-index-store-path', '/tmp/index',
        '-c', '-j8'
    ])
    replay = command_transform.derive_ir_command(invocation, '/stage/0')
    command = list(replay.command_vector)
    for removed in ('-incremental', '-emit-module', '/tmp/App.swiftmodule',
                    '/tmp/App-Swift.h', '-parseable-output', '/tmp/map.json',
                    '/tmp/index', '-c'):
      assert removed not in command
    assert command[:3] == ['/usr/bin/swiftc', '-module-name', 'App']
    assert '-j8' in command
    assert '-emit-bc' in command
    map_index = command.index('-output-file-map')
    assert command[map_index + 1] == os.path.join(
        '/stage/0', command_transform.OUTPUT_FILE_MAP_NAME)
    assert replay.cwd == '/src'

  def test_output_file_map(self):
    invocation = swift_invocation(
        ['-module-name', 'App', '/src/A.swift', '/src/B.swift'])
    replay = command_transform.derive_ir_command(invocation, '/stage/0')
    assert replay.expected_outputs == ('A.bc', 'B.bc')
    (file_name, contents), = replay.support_files
    assert file_name == command_transform.OUTPUT_FILE_MAP_NAME
    assert json.loads(contents) == {
        '/src/A.swift': {
            'llvm-bc': '/stage/0/A.bc'
        },
        '/src/B.swift': {
            'llvm-bc': '/stage/0/B.bc'
        },
    }

  def test_whole_module(self):
    invocation = swift_invocation(
        ['-module-name', 'App', '-wmo', '/src/A.swift', '/src/B.swift'])
    replay = command_transform.derive_ir_command(invocation, '/stage/0')
    assert replay.expected_outputs == ('App.bc',)

  def test_file_list(self, tmp_path):
    file_list = tmp_path / 'App.SwiftFileList'
    file_list.write_text('/src/A.swift\n/src/B.swift\n')
    invocation = swift_invocation(
        ['-module-name', 'App', '-filelist',
         str(file_list)])
    replay = command_transform.derive_ir_command(invocation, '/stage/0')
    assert replay.expected_outputs == ('A.bc', 'B.bc')

  def test_sources_in_response_file(self, tmp_path):
    response_file = tmp_path / 'App.SwiftFileList'
    response_file.write_text('/src/A.swift\n/src/B.swift\n')
    invocation = swift_invocation(
        ['-module-name', 'App', f'@{response_file}'])
    replay = command_transform.derive_ir_command(invocation, '/stage/0')
    assert replay.expected_outputs == ('A.bc', 'B.bc')
    assert replay.cwd == '/src'
    assert '-output-file-map' in replay.command_vector
    assert '-working-directory' not in replay.command_vector
    assert f'@{response_file}' in replay.command_vector

  def test_relative_response_file(self, tmp_path):
    (tmp_path / 'App.SwiftFileList').write_text('A.swift\n')
    invocation = swift_invocation(['-module-name', 'App', '@App.SwiftFileList'],
                                  str(tmp_path))
    replay = command_transform.derive_ir_command(invocation, '/stage/0')
    assert replay.expected_outputs == ('A.bc',)

  def test_unreadable_response_file(self):
    invocation = swift_invocation(
        ['-module-name', 'App', '@/nonexistent/App.resp'])
    replay = command_transform.derive_ir_command(invocation, '/stage/0')
    assert replay.expected_outputs == ()
    assert replay.cwd == '/stage/0'
    assert replay.command_vector[-2:] == ('-working-directory', '/src')

  def test_invocation_is_not_mutated(self):
    arguments = ['-module-name', 'App', '/src/A.swift', '-emit-module']
    invocation = swift_invocation(arguments)
    command_transform.derive_ir_command(invocation, '/stage/0')
    command_transform.derive_ir_command(invocation, '/stage/1')
    assert invocation.arguments == tuple(arguments)


class TestClangCommands:

  def test_output_flags_are_replaced(self):
    invocation = clang_invocation([
        '-x', 'objective-c', '-fmodules', '-MMD', '-MT', 'dependencies', '-MF',
        '/tmp/Utils.d', '--serialize-diagnostics', '/tmp/Utils.dia',
        '-fembed-bitcode-marker', '-c', '/src/Utils.m', '-o', '/tmp/Utils.o'
    ])
    replay = command_transform.derive_ir_command(invocation, '/stage/3')
    assert replay.command_vector == ('/usr/bin/clang', '-x', 'objective-c',
                                     '-fmodules', '-c', '/src/Utils.m',
                                     '-emit-llvm', '-o', '/stage/3/Utils.bc')
    assert replay.cwd == '/src'
    assert replay.expected_outputs == ('Utils.bc',)
    assert replay.support_files == ()

  def test_joined_option_values(self):
    invocation = clang_invocation(
        ['-index-store-path=/tmp/index', '-c', '/src/Utils.m'])
    replay = command_transform.derive_ir_command(invocation, '/stage/3')
    assert '-index-store-path=/tmp/index' not in replay.command_vector


def test_strip_arguments():
  assert command_transform.strip_arguments(['-a', '-o', 'out', '-b'], {'-o'},
                                           {'-b'}) == ['-a']
