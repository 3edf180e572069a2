from storescan.extraction import extract_fields
from storescan.extraction.fields import INGREDIENTS_SELECTORS, NAME_SELECTORS

PRODUCT_PAGE = """
<html><body>
  <div class="bds--heading-1 my-2 text-squid-ink">Organic Honeycrisp Apples</div>
  <span class="text-left bds--heading-5">$2.99/lb</span>
  <button data-csa-c-type="addToCart">Add to Cart</button>
  <div class="nutrition-facts">Calories 95</div>
  <section><h3>Ingredients</h3><p>Apples.</p></section>
  <button data-csa-c-slot-id="PDPInfo_selectionslot_1" data-csa-c-content-id="sz-1">
    <span>1 lb</span><span>$2.99</span>
  </button>
  <button data-csa-c-slot-id="PDPInfo_selectionslot_2" data-csa-c-content-id="sz-2">
    <span>3 lb bag</span><span>$7.99</span>
  </button>
</body></html>
"""


def test_product_page_fields():
    report = extract_fields(PRODUCT_PAGE)
    fields = report.fields

    assert fields["name"] == "Organic Honeycrisp Apples"
    assert fields["price"] == "$2.99"
    assert fields["has_add_to_cart"] is True
    assert fields["is_available"] is True
    assert fields["has_nutrition_facts"] is True
    assert fields["has_ingredients"] is True
    assert report.winners["has_ingredients"] == "text-search:ingredients"
    assert fields["variation_count"] == 2
    assert fields["variations"][1] == {
        "index": 2,
        "name": "3 lb bag",
        "content_id": "sz-2",
        "slot_id": "PDPInfo_selectionslot_2",
        "price": "$7.99",
        "full_text": "3 lb bag $7.99",
    }
    assert fields["is_bundle"] is False
    assert fields["bundle_parts"] == []


def test_price_lookup_skips_text_without_amount():
    html = '<span class="price-label">Price</span><div class="price"><span>$4.49</span></div>'
    report = extract_fields(html)

    assert report.fields["price"] == "$4.49"
    assert report.winners["price"] == ".price span"
    assert report.attempts["price"][3].message.startswith("text does not match")


def test_bundle_parts_follow_whats_included_heading():
    html = """
    <div>
      <h4 class="bds--heading-4">What’s Included</h4>
      <div>
        <button class="part primary" id="p1">Turkey Platter</button>
        <button class="part">Green Beans</button>
      </div>
    </div>
    """
    fields = extract_fields(html).fields

    assert fields["is_bundle"] is True
    assert fields["bundle_parts_count"] == 2
    assert fields["bundle_parts"][0] == {"index": 1, "text": "Turkey Platter", "class_name": "part primary", "id": "p1"}
    assert fields["bundle_parts"][1]["id"] is None


def test_empty_page_defaults_and_full_audit():
    report = extract_fields("<html><body><p>Sorry</p></body></html>")
    fields = report.fields

    assert fields["name"] is None
    assert fields["price"] is None
    assert fields["has_add_to_cart"] is False
    assert fields["is_available"] is False
    assert fields["has_ingredients"] is False
    assert fields["variation_count"] == 0
    assert len(report.attempts["name"]) == len(NAME_SELECTORS)
    assert len(report.attempts["has_ingredients"]) == len(INGREDIENTS_SELECTORS) + 1
    assert report.audit()["name"]["winner"] is None
