from flask import Blueprint

from storefront.db import get_session
from storefront.routes.utils import success_response
from storefront.services.hero_banners import HeroBannerService, banner_to_dict

hero_banners_bp = Blueprint("hero_banners", __name__)


@hero_banners_bp.route("", methods=["GET"])
def list_active_banners():
    with get_session() as session:
        banners = HeroBannerService(session).list_banners(active_only=True)
        return success_response([banner_to_dict(b) for b in banners])
