from flask import abort, current_app, g, request


def register_locale(bp):
    """Strip the leading /<locale> segment into g.locale and put it back when building URLs."""

    @bp.url_value_preprocessor
    def pull_locale(endpoint, values):
        locale = values.pop('locale', None) if values else None
        if locale not in current_app.config['LOCALES']:
            abort(404)
        g.locale = locale

    @bp.url_defaults
    def add_locale(endpoint, values):
        values.setdefault('locale', getattr(g, 'locale', None) or current_app.config['DEFAULT_LOCALE'])


def preferred_locale():
    """NEXT_LOCALE cookie, then Accept-Language, then the default."""
    locales = current_app.config['LOCALES']
    cookie = request.cookies.get('NEXT_LOCALE')
    if cookie in locales:
        return cookie
    return request.accept_languages.best_match(locales) or current_app.config['DEFAULT_LOCALE']
