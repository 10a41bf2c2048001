from .base import *

DEBUG = False

SECRET_KEY = 'test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

ALLOWED_HOSTS = ['testserver']

SITE_URL = 'https://shop.example.com'
BKASH_BASE_URL = 'https://bkash.example.com'
BKASH_USERNAME = 'sandbox-user'
BKASH_PASSWORD = 'sandbox-pass'
BKASH_APP_KEY = 'app-key'
BKASH_APP_SECRET = 'app-secret'
PRODUCTS_API_KEY = 'products-key'
