"""Download side of the pipeline.

WHY: Jobs start from a platform file reference, not a local file. This
package resolves the reference and streams the file to the working
directory.

HOW: TransferClient wraps httpx.AsyncClient; a resolver callable supplied
by the platform layer turns references into DownloadLocator objects.

RULES:
- All HTTP downloads go through TransferClient
- Resolvers are synchronous callables; the client runs them off the loop
"""

from mp3bot.transfer.client import (
    DownloadLocator,
    TransferClient,
    direct_url_resolver,
)

__all__ = ["DownloadLocator", "TransferClient", "direct_url_resolver"]
