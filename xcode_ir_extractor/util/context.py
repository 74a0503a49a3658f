"""Run-wide settings threaded explicitly through every pipeline stage."""

import dataclasses
import logging

DEFAULT_LOGGER_NAME = 'xcode_ir_extractor'


@dataclasses.dataclass(frozen=True)
class RunContext:
  logger: logging.Logger
  # Populate diagnostic-only fields while decoding the project file.
  verbose_model: bool = False


def create_context(verbose_model=False, logger_name=DEFAULT_LOGGER_NAME):
  return RunContext(
      logger=logging.getLogger(logger_name), verbose_model=verbose_model)
