# Copyright 2021-2025, Francis Clairicia-Rose-Claire-Josephine
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
#
"""Wire format module.

The only frame type is a big-endian unsigned 32-bit integer.
"""

from __future__ import annotations

__all__ = ["NumberSerializer"]

import struct as struct_module
from typing import final

from .exceptions import DeserializeError
from .lowlevel import constants


@final
class NumberSerializer:
    r"""
    Converts numbers from/to their 4-byte frame.

    Example:

        >>> s = NumberSerializer()
        >>> s.serialize(23)
        b'\x00\x00\x00\x17'
        >>> s.deserialize(b"\x00\x00\x00\x17")
        23
    """

    __slots__ = ("__s",)

    def __init__(self) -> None:
        self.__s = struct_module.Struct(">I")
        assert self.__s.size == constants.NUMBER_FRAME_SIZE  # nosec assert_used

    def serialize(self, number: int) -> bytes:
        """
        Returns the frame of `number`.

        Raises:
            ValueError: `number` does not fit in an unsigned 32-bit integer.
        """
        try:
            return self.__s.pack(number)
        except struct_module.error as exc:
            raise ValueError(f"Invalid number {number!r}: {exc}") from exc

    def deserialize(self, data: bytes | bytearray | memoryview) -> int:
        """
        Decodes a single frame.

        Raises:
            DeserializeError: `data` is not exactly 4 bytes long.
        """
        try:
            (number,) = self.__s.unpack(data)
        except struct_module.error as exc:
            raise DeserializeError(f"Invalid value: {exc}") from exc
        return number

    @property
    def size(self) -> int:
        """The frame size. Read-only attribute."""
        return self.__s.size

