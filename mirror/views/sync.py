"""
Manual sync trigger and health check.
"""

import logging

from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from mirror.sync.state import get_mirror_state

logger = logging.getLogger(__name__)


@require_GET
def health(request: HttpRequest) -> HttpResponse:
    return HttpResponse("Drive mirror sync service is running", content_type="text/plain")


@csrf_exempt
@require_POST
def manual_sync(request: HttpRequest) -> JsonResponse:
    """
    Run a sync of everything modified since the watermark.

    ``?full=1`` resets the watermark to the epoch floor first.
    Responds with the aggregated stats, or 500 if the root walk failed.
    """
    full_resync = request.GET.get("full") == "1"
    logger.info(f"Starting manual sync (full_resync={full_resync})")

    try:
        stats = get_mirror_state().sync_engine().run_manual_sync(full_resync=full_resync)
    except Exception as e:
        logger.error(f"Manual sync failed: {e}", exc_info=True)
        return JsonResponse({"status": "error", "message": str(e)}, status=500)

    return JsonResponse(
        {
            "status": "success",
            "message": "Sync completed",
            "stats": stats.as_dict(),
        }
    )
