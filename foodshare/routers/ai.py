# foodshare/routers/ai.py
from fastapi import APIRouter, Depends

from foodshare.deps import Services, gated_user, get_current_user, get_services
from foodshare.schemas import AnalyzeIn, RecipeIn, RecipesIn

router = APIRouter(prefix="/api/ai", tags=["ai"])


@router.post("/analyze-image")
async def analyze_image(body: AnalyzeIn, _=Depends(get_current_user),
                        services: Services = Depends(get_services)):
    return await services.ai.analyze_image(body.image_base64)


@router.post("/recipes")
async def suggest_recipes(body: RecipesIn, _=Depends(get_current_user),
                          services: Services = Depends(get_services)):
    return {"recipes": await services.ai.suggest_recipes(body.ingredients)}


@router.get("/recipes/saved")
async def saved_recipes(user=Depends(get_current_user), services: Services = Depends(get_services)):
    return await services.recipes.list(user["id"])


@router.post("/recipes/saved", status_code=201)
async def save_recipe(body: RecipeIn, user=Depends(gated_user),
                      services: Services = Depends(get_services)):
    return await services.recipes.save(user["id"], body.model_dump())


@router.delete("/recipes/saved/{recipe_id}")
async def delete_recipe(recipe_id: str, user=Depends(get_current_user),
                        services: Services = Depends(get_services)):
    await services.recipes.delete(user["id"], recipe_id)
    return {"ok": True}
