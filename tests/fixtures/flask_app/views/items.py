from flask import Blueprint, abort, jsonify, request

items_bp = Blueprint("items", __name__, url_prefix="/items")

ITEMS = {}


@items_bp.route("/", methods=["GET"])
def list_items():
    """List items."""
    page = request.args.get("page", 1, type=int)
    category = request.args["category"]
    return jsonify(items=list(ITEMS.values()), page=page, category=category)


@items_bp.route("/<int:item_id>", methods=["GET"])
def get_item(item_id):
    item = ITEMS.get(item_id)
    if item is None:
        abort(404)
    return jsonify(item)


@items_bp.route("/", methods=["POST"])
def create_item():
    data = request.get_json()
    name = data["name"]
    price = data.get("price")
    item = {"id": len(ITEMS) + 1, "name": name, "price": price}
    ITEMS[item["id"]] = item
    return jsonify(item), 201
