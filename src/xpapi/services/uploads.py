"""Bind staged uploads to ``@field`` placeholder arguments."""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

from xpapi.domain.batch import UploadedFile
from xpapi.domain.handlers import UPLOAD_MARKER

logger = logging.getLogger(__name__)


def bind(params: Any, files: Mapping[str, UploadedFile]) -> Any:
    """Return a copy of *params* with upload placeholders replaced.

    An argument ``"@photo"`` in any command whose field ``photo`` received a
    file becomes ``args["photo"] = {size, path, name, type}`` and the
    placeholder key is removed.  Several commands may bind the same file.
    Anything that is not a well-formed batch is returned copied but
    otherwise untouched; the dispatcher reports it.
    """
    bound = copy.deepcopy(params)
    if not files or not isinstance(bound, dict) or not isinstance(bound.get("cmds"), list):
        return bound

    for command in bound["cmds"]:
        args = command.get("args") if isinstance(command, dict) else None
        if not isinstance(args, dict):
            continue
        for key in [k for k in args if isinstance(k, str) and k.startswith(UPLOAD_MARKER)]:
            field = key[len(UPLOAD_MARKER) :]
            upload = files.get(field)
            if upload is None:
                continue
            args[field] = upload.as_arg()
            del args[key]
            logger.debug("Bound upload %s to %s", upload.name, field)
    return bound
