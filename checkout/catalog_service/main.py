# checkout/catalog_service/main.py
from fastapi import FastAPI, HTTPException

app = FastAPI(title="Catalog Service (dev mock)")


PRODUCTS = {
    "1": {"id": "1", "title": "Midnight Drive", "artist": "Nova Lane", "price": 9.99, "asset_key": "tracks/midnight-drive.mp3"},
    "2": {"id": "2", "title": "Paper Skies", "artist": "The Foldings", "price": 4.50, "asset_key": "tracks/paper-skies.mp3"},
    "3": {"id": "3", "title": "Free Sampler", "artist": "Various", "price": 0, "asset_key": "packs/sampler.zip"},
    #uploaded without an audio file yet
    "4": {"id": "4", "title": "Demo (unreleased)", "artist": "Nova Lane", "price": 1.99, "asset_key": None},
}


@app.get("/products/{product_id}")
def get_product(product_id: str):
    product = PRODUCTS.get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product
