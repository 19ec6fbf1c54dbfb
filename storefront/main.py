import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.exc import SQLAlchemyError
from storefront.version import VERSION
from storefront.core.config import settings
from storefront.core.errors import StoreError
from storefront.api import routes_auth, categories, products, coupons, orders, reviews

logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
logger = logging.getLogger(__name__)

instrumentator = Instrumentator()

app = FastAPI(title='Storefront Service', version=VERSION)

instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/store/metrics",
    should_gzip=True,
)

@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(status_code=exc.status_code, content={'detail': exc.message})

@app.exception_handler(SQLAlchemyError)
async def db_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("unhandled database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={'detail': 'Internal error'})

@app.get('/health')
def health(): return {'status':'ok'}

@app.get('/store/health')
def store_health(): return {'status':'ok'}

@app.get('/v1/_info')
def info(): return {'service':'storefront','version':VERSION}

app.include_router(routes_auth.router, prefix='/store/v1/auth',       tags=['auth'])
app.include_router(categories.router,  prefix='/store/v1/categories', tags=['categories'])
app.include_router(products.router,    prefix='/store/v1/products',   tags=['products'])
app.include_router(coupons.router,     prefix='/store/v1/coupons',    tags=['coupons'])
app.include_router(orders.router,      prefix='/store/v1/orders',     tags=['orders'])
app.include_router(reviews.router,     prefix='/store/v1/reviews',    tags=['reviews'])
