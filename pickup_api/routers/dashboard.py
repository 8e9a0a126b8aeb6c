"""
pickup_api/routers/dashboard.py
Endpoints:
  GET /             → dashboard shell (Tailwind CDN, mobile-first)
  GET /index.html   → same

The page is static: its script polls /api/availability and renders
everything client-side, so the shell is edge-cached for an hour no matter
how fresh the data is.
"""

from fastapi import APIRouter, Depends, Request
from starlette.responses import HTMLResponse, Response

from pickup_api.core.cache import ResponseCache, get_edge_cache

router = APIRouter(tags=["dashboard"])

SHELL_CACHE_CONTROL = "public, max-age=300, s-maxage=3600, stale-while-revalidate=86400"


INDEX_HTML = """<!doctype html>
<html lang="zh-Hant-TW">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>iPhone 17 系列台灣門市供貨</title>
    <meta name="description" content="自動擷取 apple.com/tw 的 iPhone 17 門市取貨可用日。" />
    <link rel="preconnect" href="https://cdn.jsdelivr.net" crossorigin>
    <script src="https://cdn.tailwindcss.com"></script>
    <script>
      tailwind.config = {
        theme: {
          extend: {
            colors: {
              brand: {
                50: '#eef2ff', 100: '#e0e7ff', 200: '#c7d2fe', 300: '#a5b4fc', 400: '#818cf8',
                500: '#6366f1', 600: '#4f46e5', 700: '#4338ca', 800: '#3730a3', 900: '#312e81'
              }
            }
          }
        }
      }
    </script>
    <style>
      .glass { backdrop-filter: blur(10px); background: rgba(255,255,255,0.65); }
      .dark .glass { background: rgba(23,23,23,0.55); }
    </style>
  </head>
  <body class="min-h-dvh bg-gradient-to-b from-brand-50 to-white text-gray-900">
    <header class="sticky top-0 z-30 border-b bg-white/70 backdrop-blur supports-[backdrop-filter]:glass">
      <div class="mx-auto max-w-5xl px-4 py-3 flex items-center gap-3">
        <div>
          <h1 class="text-lg font-semibold leading-tight">iPhone 17 系列台灣門市供貨</h1>
          <p id="subtitle" class="text-xs text-gray-500">即時擷取 Apple 官網資料</p>
        </div>
        <div class="ml-auto flex items-center gap-2">
          <button id="refreshBtn" class="rounded-lg bg-brand-600 text-white px-3 py-1.5 text-sm hover:bg-brand-700 active:scale-[.98] transition">重新整理</button>
          <button id="toggleOnlyAvail" class="rounded-lg border px-3 py-1.5 text-sm">只看可取貨</button>
        </div>
      </div>
    </header>

    <main class="mx-auto max-w-5xl px-4 pb-20 pt-4">
      <section class="mb-4">
        <div class="rounded-2xl bg-white shadow-sm ring-1 ring-black/5 overflow-hidden">
          <div class="p-4 sm:p-6">
            <h2 class="font-semibold">所有 iPhone 17 系列機型</h2>
            <p id="updated" class="text-sm text-gray-500">載入中…</p>
            <div id="models" class="mt-2 flex flex-wrap gap-2"></div>
            <div class="mt-3 flex flex-wrap items-center gap-2" id="familyFilters">
              <span class="text-xs text-gray-500 mr-1">快速篩選：</span>
              <button data-family="all" class="rounded-full border px-3 py-1 text-xs">全部</button>
              <button data-family="Standard" class="rounded-full border px-3 py-1 text-xs">標準款</button>
              <button data-family="Pro" class="rounded-full border px-3 py-1 text-xs">Pro</button>
              <button data-family="Pro Max" class="rounded-full border px-3 py-1 text-xs">Pro Max</button>
              <button data-family="Air" class="rounded-full border px-3 py-1 text-xs">Air</button>
            </div>
            <div class="mt-3 flex flex-wrap items-center gap-2" id="controls">
              <div class="relative grow sm:w-72">
                <input id="q" type="text" placeholder="搜尋：顏色 / 容量 / 關鍵字" class="w-full rounded-lg border px-3 py-2 text-sm pl-9" />
                <span class="absolute left-3 top-2.5 text-gray-400">🔍</span>
              </div>
              <label class="text-sm text-gray-600 hidden sm:inline">排序</label>
              <select id="sortBy" class="rounded-lg border px-2 py-1.5 text-sm">
                <option value="store">門市名稱</option>
                <option value="available">可取貨優先</option>
              </select>
              <button id="resetFilters" class="rounded-lg border px-3 py-1.5 text-sm">重設</button>
            </div>
          </div>
        </div>
      </section>

      <section>
        <div id="stores" class="grid grid-cols-1 sm:grid-cols-2 lg:grid-cols-3 gap-4"></div>
      </section>
    </main>

    <template id="store-card">
      <article class="rounded-2xl bg-white shadow-sm ring-1 ring-black/5 overflow-hidden flex flex-col">
        <div class="p-4">
          <h3 class="font-semibold text-base"></h3>
          <p class="text-sm text-gray-500"></p>
          <div class="mt-2 flex flex-wrap items-center gap-2 text-sm">
            <span data-status class="inline-flex items-center gap-1 rounded-full px-2 py-0.5 text-xs font-medium"></span>
            <span data-hours class="text-gray-600"></span>
          </div>
          <div class="mt-2 flex flex-wrap gap-2">
            <a data-map class="rounded-lg border px-2 py-1 text-sm hover:bg-gray-50" target="_blank" rel="noreferrer">地圖</a>
            <a data-phone class="rounded-lg border px-2 py-1 text-sm hover:bg-gray-50">撥打電話</a>
          </div>
          <a data-link class="mt-2 inline-block text-brand-700 text-sm hover:underline" target="_blank" rel="noreferrer">門市資訊 →</a>
        </div>
        <div class="border-t">
          <table class="w-full text-sm">
            <thead class="bg-gray-50 text-gray-600">
              <tr>
                <th class="text-left px-3 py-2">機型</th>
                <th class="text-right px-3 py-2">取貨日</th>
              </tr>
            </thead>
            <tbody></tbody>
          </table>
        </div>
      </article>
    </template>

    <script>
      const FAMILY_ORDER = ['Air', 'Pro Max', 'Pro', 'Standard'];
      const ACTIVE = ['bg-gray-900', 'text-white'];
      const state = { onlyAvail: false, data: null, families: new Set(), q: '', sortBy: 'store' };
      const elUpdated = document.getElementById('updated');
      const elModels = document.getElementById('models');
      const elStores = document.getElementById('stores');
      const tmplStore = document.getElementById('store-card');
      const btnRefresh = document.getElementById('refreshBtn');
      const btnOnly = document.getElementById('toggleOnlyAvail');
      const elFamilyFilters = document.getElementById('familyFilters');
      const elQ = document.getElementById('q');
      const elSort = document.getElementById('sortBy');
      const btnReset = document.getElementById('resetFilters');
      const btnAll = elFamilyFilters.querySelector('[data-family=all]');

      function isAvailable(a){ return a.status === 'available' || a.isBuyable; }

      function familyOf(part){
        const slug = (part.family || '').toLowerCase();
        const name = part.name || '';
        if (slug.includes('iphone-air') || /\\bAir\\b/i.test(name)) return 'Air';
        if (slug.includes('iphone-17-pro')) return /Pro Max/i.test(name) ? 'Pro Max' : 'Pro';
        return 'Standard';
      }

      function familyTag(fam){
        const span = document.createElement('span');
        const tone = fam === 'Standard' ? 'bg-gray-100 text-gray-700'
          : fam === 'Air' ? 'bg-sky-100 text-sky-800'
          : fam === 'Pro' ? 'bg-purple-100 text-purple-800'
          : 'bg-indigo-100 text-indigo-800';
        span.className = 'ml-1 inline-flex items-center rounded-full px-2 py-0.5 text-[10px] font-medium ' + tone;
        span.textContent = fam;
        return span;
      }

      function selectAllFamilies(){
        state.families.clear();
        elFamilyFilters.querySelectorAll('button').forEach(b => b.classList.remove(...ACTIVE));
        btnAll.classList.add(...ACTIVE);
      }

      elFamilyFilters.querySelectorAll('button').forEach(btn => {
        btn.addEventListener('click', () => {
          const f = btn.getAttribute('data-family');
          if (f === 'all') {
            selectAllFamilies();
          } else if (state.families.has(f)) {
            state.families.delete(f);
            btn.classList.remove(...ACTIVE);
            if (!state.families.size) btnAll.classList.add(...ACTIVE);
          } else {
            state.families.add(f);
            btn.classList.add(...ACTIVE);
            btnAll.classList.remove(...ACTIVE);
          }
          render();
        });
      });
      selectAllFamilies();

      btnRefresh.addEventListener('click', load);
      btnOnly.addEventListener('click', () => {
        state.onlyAvail = !state.onlyAvail;
        btnOnly.classList.toggle('bg-gray-900');
        btnOnly.classList.toggle('text-white');
        render();
      });
      elQ.addEventListener('input', () => { state.q = elQ.value.trim(); render(); });
      elSort.addEventListener('change', () => { state.sortBy = elSort.value; render(); });
      btnReset.addEventListener('click', () => {
        state.q = ''; elQ.value = '';
        selectAllFamilies();
        state.onlyAvail = false; btnOnly.classList.remove(...ACTIVE);
        state.sortBy = 'store'; elSort.value = 'store';
        render();
      });

      async function load(){
        try {
          btnRefresh.disabled = true; btnRefresh.textContent = '更新中…';
          const res = await fetch('/api/availability');
          const json = await res.json();
          state.data = json;
          const when = new Date(json.generatedAt).toLocaleString('zh-TW');
          elUpdated.textContent = json.source === 'warmup'
            ? '資料準備中，請稍後重新整理。'
            : '資料更新時間：' + when;
          renderModels(json.models || []);
          render();
          if (json.source === 'warmup') setTimeout(load, 5000);
        } catch (e) {
          elUpdated.textContent = '載入失敗，請稍後再試。';
        } finally {
          btnRefresh.disabled = false; btnRefresh.textContent = '重新整理';
        }
      }

      function renderModels(models){
        elModels.innerHTML = '';
        for (const m of models){
          const chip = document.createElement('span');
          chip.className = 'text-xs rounded-full border px-2 py-1';
          chip.textContent = m.name;
          chip.appendChild(familyTag(familyOf(m)));
          elModels.appendChild(chip);
        }
      }

      function groupByStore(){
        const byStore = new Map();
        const q = state.q.toLowerCase();
        for (const a of state.data.availability || []){
          if (state.onlyAvail && a.status !== 'available') continue;
          if (state.families.size && !state.families.has(familyOf(a.part))) continue;
          if (q && !((a.part.name + ' ' + (a.part.partNumber || '')).toLowerCase().includes(q))) continue;
          const key = a.store.storeNumber || a.store.storeName;
          if (!byStore.has(key)) byStore.set(key, { store: a.store, list: [] });
          byStore.get(key).list.push(a);
        }
        const byName = (a, b) => (a.store.storeName || '').localeCompare(b.store.storeName || '');
        const groups = Array.from(byStore.values());
        if (state.sortBy === 'available') {
          groups.sort((a, b) => {
            const aa = a.list.some(isAvailable), bb = b.list.some(isAvailable);
            return aa !== bb ? (aa ? -1 : 1) : byName(a, b);
          });
        } else {
          groups.sort(byName);
        }
        return groups;
      }

      function renderStore(g){
        const node = tmplStore.content.cloneNode(true);
        node.querySelector('h3').textContent = g.store.storeName;
        node.querySelector('p').textContent = (g.store.city || '') + ' · ' + (g.store.address || '');
        node.querySelector('[data-link]').href = g.store.url || '#';

        const st = node.querySelector('[data-status]');
        st.textContent = g.store.isOpen ? '營業中' : '已打烊';
        st.className = 'inline-flex items-center gap-1 rounded-full px-2 py-0.5 text-xs font-medium '
          + (g.store.isOpen ? 'bg-green-100 text-green-800' : 'bg-gray-100 text-gray-700');
        node.querySelector('[data-hours]').textContent = g.store.todayHours
          ? ('今日營業：' + g.store.todayHours) : '營業時間請見門市頁面';

        const map = node.querySelector('[data-map]');
        if (g.store.mapsUrl) map.href = g.store.mapsUrl; else map.style.display = 'none';
        const phone = node.querySelector('[data-phone]');
        if (g.store.phoneHref) phone.href = g.store.phoneHref; else phone.style.display = 'none';

        const groups = new Map();
        for (const item of g.list){
          const fam = familyOf(item.part);
          if (!groups.has(fam)) groups.set(fam, []);
          groups.get(fam).push(item);
        }

        const card = node.querySelector('article');
        const summary = document.createElement('div');
        summary.className = 'px-4 pb-2 flex flex-wrap gap-2 text-xs';
        const tbody = node.querySelector('tbody');
        for (const fam of FAMILY_ORDER){
          const list = groups.get(fam) || [];
          if (!list.length) continue;

          const chip = document.createElement('span');
          chip.className = 'rounded-full border px-2 py-1';
          chip.textContent = fam + '：' + list.filter(isAvailable).length + '/' + list.length;
          summary.appendChild(chip);

          const trh = document.createElement('tr');
          const th = document.createElement('td');
          th.colSpan = 2; th.className = 'bg-gray-50 px-3 py-2 text-xs text-gray-600'; th.textContent = fam;
          trh.appendChild(th); tbody.appendChild(trh);

          for (const item of list){
            const tr = document.createElement('tr');
            tr.className = 'border-t';
            const td1 = document.createElement('td');
            td1.className = 'px-3 py-2 text-gray-900';
            td1.textContent = item.part.name;
            if (item.part.price) {
              const pz = document.createElement('span');
              pz.className = 'ml-2 text-xs text-gray-500';
              pz.textContent = 'NT$' + Number(item.part.price).toLocaleString('zh-TW');
              td1.appendChild(pz);
            }
            const td2 = document.createElement('td');
            td2.className = 'px-3 py-2 text-right';
            const badge = document.createElement('span');
            const ok = item.status === 'available';
            badge.className = 'inline-flex items-center gap-1 rounded-full px-2 py-1 text-xs font-medium '
              + (ok ? 'bg-green-100 text-green-800' : 'bg-gray-100 text-gray-700');
            badge.textContent = item.pickupQuote || (ok ? '可取貨' : '暫無供貨');
            td2.appendChild(badge);
            tr.appendChild(td1); tr.appendChild(td2);
            tbody.appendChild(tr);
          }
        }
        card.insertBefore(summary, card.children[1]);
        return node;
      }

      function render(){
        if (!state.data) return;
        elStores.innerHTML = '';
        for (const g of groupByStore()) elStores.appendChild(renderStore(g));
      }

      load();
    </script>
  </body>
</html>
"""


def render_index() -> HTMLResponse:
    return HTMLResponse(INDEX_HTML, headers={"Cache-Control": SHELL_CACHE_CONTROL})


def shell_cache_key(request: Request) -> str:
    return f"{request.url.scheme}://{request.url.netloc}/"


@router.get("/", response_class=HTMLResponse)
@router.get("/index.html", response_class=HTMLResponse, include_in_schema=False)
async def index(request: Request, edge: ResponseCache = Depends(get_edge_cache)) -> Response:
    key = shell_cache_key(request)
    hit = edge.match(key)
    if hit is not None:
        return hit
    res = render_index()
    edge.put(key, res)
    return res
