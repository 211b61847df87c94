"""Browser-side stand-ins for packages that cannot be bundled for the preview frame."""

GLOBAL_REACT = "module.exports = window.React;\n"

GLOBAL_REACT_DOM = "module.exports = window.ReactDOM;\n"

JSX_RUNTIME = """\
module.exports = {
  jsx: window.React.jsx || window.React.createElement,
  jsxs: window.React.jsxs || window.React.createElement,
  Fragment: window.React.Fragment
};
"""

REACT_NATIVE_WEB = """\
const RN = window.ReactNativeWeb || window.ReactNative || {};
if (!RN.Dimensions) {
  RN.Dimensions = {
    get: (which) => which === 'screen'
      ? { width: (window.screen || {}).width || 375, height: (window.screen || {}).height || 812 }
      : { width: window.innerWidth || 375, height: window.innerHeight || 812 },
    addEventListener: () => ({ remove: () => {} }),
    removeEventListener: () => {}
  };
}
if (!RN.Platform) {
  RN.Platform = { OS: 'web', select: (obj) => obj.web !== undefined ? obj.web : obj.default };
}
module.exports = RN;
"""

ASYNC_STORAGE = """\
const AsyncStorage = {
  getItem: async (key) => localStorage.getItem(key),
  setItem: async (key, value) => { localStorage.setItem(key, value); },
  removeItem: async (key) => { localStorage.removeItem(key); },
  clear: async () => { localStorage.clear(); },
  getAllKeys: async () => Object.keys(localStorage),
  multiGet: async (keys) => keys.map((key) => [key, localStorage.getItem(key)]),
  multiSet: async (pairs) => { pairs.forEach(([key, value]) => localStorage.setItem(key, value)); },
  multiRemove: async (keys) => { keys.forEach((key) => localStorage.removeItem(key)); }
};
module.exports = AsyncStorage;
module.exports.default = AsyncStorage;
"""

COOKIES = """\
const expire = (name) => { document.cookie = name + '=; expires=Thu, 01 Jan 1970 00:00:00 GMT; path=/'; };
const parse = () => document.cookie.split(';').map((c) => c.trim()).filter(Boolean).map((c) => {
  const i = c.indexOf('=');
  return i < 0 ? [c, ''] : [c.slice(0, i), c.slice(i + 1)];
});
const CookieManager = {
  set: async ({ name, value, path, domain, expires, secure }) => {
    let cookie = name + '=' + value;
    if (path) cookie += '; path=' + path;
    if (domain) cookie += '; domain=' + domain;
    if (expires) cookie += '; expires=' + new Date(expires).toUTCString();
    if (secure) cookie += '; secure';
    document.cookie = cookie;
    return true;
  },
  get: async (name) => {
    const hit = parse().find(([key]) => key === name);
    return hit ? { name, value: hit[1] } : null;
  },
  getAll: async () => {
    const all = {};
    parse().forEach(([name, value]) => { all[name] = { name, value }; });
    return all;
  },
  clearAll: async () => { parse().forEach(([name]) => expire(name)); return true; },
  clearByName: async (name) => { expire(name); return true; }
};
module.exports = CookieManager;
module.exports.default = CookieManager;
"""

SAFE_AREA = """\
const React = window.React;
const insets = { top: 0, bottom: 0, left: 0, right: 0 };
const frame = () => ({ x: 0, y: 0, width: window.innerWidth || 375, height: window.innerHeight || 812 });
const useSafeAreaInsets = () => insets;
const useSafeAreaFrame = frame;
module.exports = {
  SafeAreaProvider: ({ children }) => children,
  SafeAreaConsumer: ({ children }) => children(insets),
  SafeAreaView: ({ children, style, ...props }) => React.createElement('div', { style, ...props }, children),
  useSafeAreaInsets,
  useSafeAreaFrame,
  initialWindowMetrics: { insets, frame: frame() }
};
"""

REANIMATED = """\
const React = window.React;
const passthrough = (tag) => ({ style, children, ...props }) => React.createElement(tag, { style, ...props }, children);
const Animated = {
  View: passthrough('div'),
  Text: passthrough('span'),
  ScrollView: passthrough('div'),
  Image: passthrough('img'),
  createAnimatedComponent: (component) => component
};
const identity = (value) => value;
module.exports = {
  default: Animated,
  Animated,
  useSharedValue: (value) => ({ value }),
  useAnimatedStyle: (factory) => factory(),
  useDerivedValue: (factory) => ({ value: factory() }),
  withSpring: identity,
  withTiming: identity,
  withDelay: (_, value) => value,
  withRepeat: identity,
  runOnJS: (fn) => fn,
  Easing: { linear: identity, ease: identity, inOut: () => identity }
};
"""

WEBVIEW = """\
const React = window.React;
const WebView = ({ source, style, ...props }) => React.createElement('iframe', {
  src: (source && (source.uri || source.html)) || 'about:blank',
  style: { border: 'none', width: '100%', height: '100%', ...style },
  ...props
});
module.exports = { WebView, default: WebView };
"""

_QUERY = """{
  find: async () => ({ items: [], totalCount: 0 }),
  limit: function () { return this; },
  skip: function () { return this; },
  ascending: function () { return this; },
  descending: function () { return this; },
  eq: function () { return this; },
  ne: function () { return this; },
  contains: function () { return this; }
}"""

WIX_SDKS = {
    "@wix/wix-data-items-sdk": f"""\
const items = {{
  query: () => ({_QUERY}),
  get: async () => null,
  insert: async (collection, item) => ({{ _id: 'mock-id', ...item }}),
  update: async (collection, id, item) => ({{ _id: id, ...item }}),
  save: async (collection, item) => ({{ _id: 'mock-id', ...item }}),
  remove: async () => undefined
}};
module.exports = {{ items }};
""",
    "@wix/wix-stores-sdk": f"""\
const emptyCart = () => ({{ _id: 'mock-cart-id', lineItems: [], totals: {{ subtotal: 0, total: 0, tax: 0, shipping: 0 }} }});
const cart = {{
  getCurrentCart: async () => emptyCart(),
  addToCart: async (items) => ({{ cart: {{ ...emptyCart(), lineItems: items }}, addedItems: items }}),
  removeLineItemsFromCart: async () => ({{ cart: emptyCart() }}),
  updateLineItemsInCart: async (lineItems) => ({{ cart: {{ ...emptyCart(), lineItems }} }})
}};
const products = {{ getProduct: async () => null, queryProducts: () => ({_QUERY}) }};
module.exports = {{ cart, products }};
""",
    "@wix/wix-bookings-sdk": f"""\
const services = {{ getService: async () => null, queryServices: () => ({_QUERY}) }};
const bookings = {{
  createBooking: async (booking) => ({{ _id: 'mock-booking-id', ...booking }}),
  getBooking: async () => null,
  queryBookings: () => ({_QUERY})
}};
module.exports = {{ services, bookings }};
""",
    "@wix/wix-members-sdk": """\
const authentication = {
  login: async (credentials) => ({ member: { _id: 'mock-member-id', loginEmail: credentials && credentials.email } }),
  logout: async () => undefined,
  register: async (info) => ({ member: { _id: 'mock-member-id', ...info } })
};
module.exports = { authentication, currentMember: { getMember: async () => null } };
""",
}

# Unknown @wix/* packages: any property access yields an inert async function
WIX_GENERIC = """\
const inert = new Proxy({}, { get: (_, key) => key === '__esModule' ? false : async () => null });
module.exports = inert;
"""
