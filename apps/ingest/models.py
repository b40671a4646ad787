# Shapes that flow through one pipeline invocation.
# RawItems and NormalizedDocuments live only for the invocation that produced them.
from typing import Any, Dict, Optional, Sequence, Union

RawItem = Union[Dict[str, Any], str, bytes]  # parsed JSON object (endpoint) or one text line (file)
NormalizedDocument = Dict[str, Any]          # lower-cased keys + "date" + "id"
FieldSelector = Optional[Sequence[str]]      # None -> every key of the field source
