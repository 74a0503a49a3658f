"""Reads Xcode projects and workspaces from disk."""

import json
import os
import xml.etree.ElementTree

import openstep_plist

from xcode_ir_extractor.project import pbxproj_objects
from xcode_ir_extractor.project.project_model import ProjectCollection
from xcode_ir_extractor.project.project_model import ProjectModel
from xcode_ir_extractor.util.errors import DecodeError
from xcode_ir_extractor.util.errors import ProjectLoadError

PBXPROJ_FILE_NAME = 'project.pbxproj'
WORKSPACE_DATA_FILE_NAME = 'contents.xcworkspacedata'


def read_raw_project(path):
  """Returns the top level dictionary of a pbxproj file.

  Accepts the OpenStep property list Xcode writes as well as the JSON
  produced by `plutil -convert json`.
  """
  if os.path.isdir(path):
    path = os.path.join(path, PBXPROJ_FILE_NAME)
  try:
    with open(path, encoding='utf-8') as project_file:
      contents = project_file.read()
  except OSError as error:
    raise ProjectLoadError(path, error) from error
  try:
    if path.endswith('.json'):
      raw_project = json.loads(contents)
    else:
      raw_project = openstep_plist.loads(contents)
  except (ValueError, openstep_plist.ParseError) as error:
    raise ProjectLoadError(path, error) from error
  if not isinstance(raw_project, dict):
    raise ProjectLoadError(path, 'top level object is not a dictionary')
  return raw_project


def parse_project(raw_project, context, path=None):
  raw_objects = raw_project.get('objects')
  if not isinstance(raw_objects, dict):
    raise DecodeError('<project>', 'objects', 'missing objects table')
  root_object_id = raw_project.get('rootObject')
  if not isinstance(root_object_id, str):
    raise DecodeError('<project>', 'rootObject', 'missing root object')
  objects = pbxproj_objects.decode_objects(raw_objects, context.verbose_model)
  context.logger.debug(f'Decoded {len(objects)} objects from {path}')
  return ProjectModel(objects, root_object_id, context, path=path)


def _workspace_locations(element, base_dir):
  for child in element:
    location = child.get('location', '')
    kind, _, relative_path = location.partition(':')
    if kind == 'absolute':
      child_path = relative_path
    elif kind == 'self':
      child_path = base_dir
    else:
      child_path = os.path.join(base_dir, relative_path)
    if child.tag == 'FileRef':
      yield os.path.normpath(child_path)
    elif child.tag == 'Group':
      yield from _workspace_locations(child, child_path)


def workspace_project_paths(workspace_path):
  data_path = os.path.join(workspace_path, WORKSPACE_DATA_FILE_NAME)
  try:
    tree = xml.etree.ElementTree.parse(data_path)
  except (OSError, xml.etree.ElementTree.ParseError) as error:
    raise ProjectLoadError(data_path, error) from error
  base_dir = os.path.dirname(os.path.abspath(workspace_path))
  return [
      location
      for location in _workspace_locations(tree.getroot(), base_dir)
      if location.endswith('.xcodeproj')
  ]


def load_project(path, context):
  """Loads a project, or every project of a workspace.

  Returns:
    A ProjectModel for a single project, or a ProjectCollection for a
    workspace.
  """
  path = os.fspath(path).rstrip(os.sep)
  if not path.endswith('.xcworkspace'):
    return parse_project(read_raw_project(path), context, path=path)
  projects = []
  for project_path in workspace_project_paths(path):
    if not os.path.exists(project_path):
      context.logger.warning(
          f'Workspace {path} references missing project {project_path}')
      continue
    projects.append(
        parse_project(
            read_raw_project(project_path), context, path=project_path))
  if not projects:
    raise ProjectLoadError(path, 'workspace does not reference any project')
  return ProjectCollection(projects)
