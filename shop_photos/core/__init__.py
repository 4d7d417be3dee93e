"""Photo compression core.

- `compress_image` runs one photo through decode -> resize -> quality search.
- `compress_batch` fans a list of photos out over `compress_image`.
- Codecs are injected; `PillowCodec` is the production one.
"""

from .batch import BatchItem, BatchResult, check_batch_count, compress_batch  # noqa: F401
from .codec import Codec, PillowCodec  # noqa: F401
from .compress import SearchOutcome, compress_image, search_quality  # noqa: F401
from .errors import BatchCountExceeded, DecodeError, EncodeError, PhotoCompressionError  # noqa: F401
from .models import (  # noqa: F401
    CompressionAttempt,
    CompressionBudget,
    CompressionResult,
    SourceImage,
)
from .naming import MonotonicStamp, output_name, sanitize_stem  # noqa: F401
from .resize import fit_within  # noqa: F401
